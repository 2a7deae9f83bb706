from __future__ import annotations

import logging
from dataclasses import dataclass

from voice_memory.memory.embedder import Embedder
from voice_memory.memory.guarded import DEFAULT_CALL_TIMEOUT_SEC, embed_or_none
from voice_memory.memory.similarity import cosine_similarity
from voice_memory.memory.types import MemoryRecord, MemorySnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoredMemory:
    record: MemoryRecord
    score: float


class Retriever:
    """Ranks stored memories by similarity to the current user utterance."""

    label = "Memory Retrieval"

    def __init__(
        self,
        embedder: Embedder,
        *,
        similarity_threshold: float = 0.3,
        max_context_items: int = 3,
        timeout_sec: float = DEFAULT_CALL_TIMEOUT_SEC,
    ) -> None:
        self._embedder = embedder
        self._similarity_threshold = similarity_threshold
        self._max_context_items = max(0, max_context_items)
        self._timeout_sec = timeout_sec

    async def query(self, text: str, snapshot: MemorySnapshot) -> list[str]:
        """Texts of the top matches, best first."""

        return [item.record.text for item in await self.query_scored(text, snapshot)]

    async def query_scored(self, text: str, snapshot: MemorySnapshot) -> list[ScoredMemory]:
        cleaned = (text or "").strip()
        if not cleaned or self._max_context_items == 0:
            return []
        candidates = [record for record in snapshot.all_records() if record.has_embedding]
        if not candidates:
            logger.debug("[%s] No existing memories to search", self.label)
            return []

        vectors = await embed_or_none(
            self._embedder, [cleaned], label=self.label, timeout_sec=self._timeout_sec
        )
        if vectors is None:
            return []
        query_vector = vectors[0]

        matches = [
            ScoredMemory(record=record, score=cosine_similarity(query_vector, record.embedding))
            for record in candidates
        ]
        # sorted() is stable, so equal scores keep flash-then-long-term insertion order.
        relevant = sorted(
            (item for item in matches if item.score >= self._similarity_threshold),
            key=lambda item: item.score,
            reverse=True,
        )[: self._max_context_items]

        if relevant:
            logger.info("[%s] Found %s relevant memories", self.label, len(relevant))
        else:
            logger.debug("[%s] No relevant memories found", self.label)
        return relevant
