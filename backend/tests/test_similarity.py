from __future__ import annotations

import math

import pytest

from voice_memory.memory.similarity import cosine_similarity, is_near_duplicate


def test_identical_vectors_score_one():
    vector = [0.3, -1.2, 4.0, 0.5]
    assert cosine_similarity(vector, vector) == pytest.approx(1.0)


def test_opposite_and_orthogonal_vectors():
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


@pytest.mark.parametrize(
    "left,right",
    [
        ([], [1.0, 2.0]),
        ([1.0, 2.0], []),
        ([1.0, 2.0], [1.0, 2.0, 3.0]),
        ([0.0, 0.0], [1.0, 1.0]),
    ],
)
def test_degenerate_inputs_score_zero(left, right):
    assert cosine_similarity(left, right) == 0.0


@pytest.mark.parametrize(
    "vector",
    [
        [1e200, 1e200],
        [1e154, 1e154],
        [1e-200, 3e-200],
        [-4e300, 2e-300, 7e299],
    ],
)
def test_extreme_magnitudes_still_score_one_against_themselves(vector):
    assert cosine_similarity(vector, vector) == pytest.approx(1.0)


def test_extreme_magnitudes_keep_direction():
    assert cosine_similarity([1e200, 0.0], [0.0, 1e-200]) == pytest.approx(0.0)
    assert cosine_similarity([1e200, 1e200], [-1e-200, -1e-200]) == pytest.approx(-1.0)


@pytest.mark.parametrize(
    "vector",
    [[math.inf, 1.0], [math.nan, 1.0]],
)
def test_non_finite_components_score_zero(vector):
    assert cosine_similarity(vector, [1.0, 1.0]) == 0.0


def test_near_duplicate_uses_inclusive_threshold():
    assert is_near_duplicate([1.0, 0.0], [[0.0, 1.0], [1.0, 0.0]], 1.0)
    assert not is_near_duplicate([1.0, 0.0], [[0.0, 1.0]], 0.5)


def test_near_duplicate_ignores_missing_embeddings():
    assert not is_near_duplicate([], [[1.0, 0.0]], -1.0)
    assert not is_near_duplicate([1.0, 0.0], [[]], -1.0)
