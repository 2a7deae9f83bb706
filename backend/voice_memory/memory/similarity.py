from __future__ import annotations

import math
from collections.abc import Iterable, Sequence


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1].

    Empty, zero-norm or dimension-mismatched inputs score 0.0 instead of raising.
    """

    if not left or not right or len(left) != len(right):
        return 0.0
    left_scale = max(abs(value) for value in left)
    right_scale = max(abs(value) for value in right)
    if not (0 < left_scale < math.inf and 0 < right_scale < math.inf):
        return 0.0
    # Scaling to max |component| = 1 keeps the squares clear of overflow and underflow.
    dot = 0.0
    left_sq = 0.0
    right_sq = 0.0
    for l_raw, r_raw in zip(left, right):
        l_value = l_raw / left_scale
        r_value = r_raw / right_scale
        dot += l_value * r_value
        left_sq += l_value * l_value
        right_sq += r_value * r_value
    if left_sq <= 0 or right_sq <= 0:
        return 0.0
    score = dot / (math.sqrt(left_sq) * math.sqrt(right_sq))
    if math.isnan(score):
        return 0.0
    # Rounding can push parallel vectors a hair past 1.
    return max(-1.0, min(1.0, score))


def is_near_duplicate(
    vector: Sequence[float], others: Iterable[Sequence[float]], threshold: float
) -> bool:
    """True when ``vector`` scores at or above ``threshold`` against any of ``others``.

    Pairs where either side has no embedding never count as duplicates.
    """

    if not vector:
        return False
    for other in others:
        if not other:
            continue
        if cosine_similarity(vector, other) >= threshold:
            return True
    return False
