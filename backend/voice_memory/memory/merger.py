from __future__ import annotations

import logging
from collections.abc import Sequence

from voice_memory.memory.similarity import is_near_duplicate
from voice_memory.memory.types import MemoryRecord, MemorySnapshot

logger = logging.getLogger(__name__)


def merge_and_dedup(
    existing: Sequence[MemoryRecord],
    incoming: Sequence[MemoryRecord],
    threshold: float,
    max_items: int,
) -> tuple[MemoryRecord, ...]:
    """Append non-duplicate incoming records, then keep the newest ``max_items``.

    Each incoming record is compared against the merged list so far, which
    includes incoming records accepted earlier in the same call.
    """

    merged: list[MemoryRecord] = list(existing)
    for record in incoming:
        if not record.has_embedding:
            continue
        if is_near_duplicate(record.embedding, (item.embedding for item in merged), threshold):
            continue
        merged.append(record)
    if max_items <= 0:
        return ()
    return tuple(merged[-max_items:])


class Merger:
    """Folds extractor output into a snapshot under capacity bounds."""

    def __init__(
        self,
        *,
        similarity_threshold: float = 0.9,
        max_flash_memories: int = 200,
        max_long_term_memories: int = 200,
    ) -> None:
        self._similarity_threshold = similarity_threshold
        self._max_flash_memories = max_flash_memories
        self._max_long_term_memories = max_long_term_memories

    def merge(
        self,
        snapshot: MemorySnapshot,
        new_flash: Sequence[MemoryRecord] = (),
        new_long_term: Sequence[MemoryRecord] = (),
    ) -> MemorySnapshot:
        merged = MemorySnapshot(
            flash_memory=merge_and_dedup(
                snapshot.flash_memory,
                new_flash,
                self._similarity_threshold,
                self._max_flash_memories,
            ),
            long_term_memory=merge_and_dedup(
                snapshot.long_term_memory,
                new_long_term,
                self._similarity_threshold,
                self._max_long_term_memories,
            ),
        )
        if new_flash:
            logger.info("New flash memories created: %s", len(new_flash))
        if new_long_term:
            logger.info("New long term memories created: %s", len(new_long_term))
        return merged
