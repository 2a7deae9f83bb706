from __future__ import annotations

import logging
from collections.abc import Sequence

from voice_memory.memory.embedder import Embedder
from voice_memory.memory.flash_parser import FlashCandidate, ParseOptions, parse_flash_output
from voice_memory.memory.guarded import (
    DEFAULT_CALL_TIMEOUT_SEC,
    CompletionService,
    complete_or_none,
    embed_or_none,
)
from voice_memory.memory.prompts import SKIP_SENTINEL, render_flash_prompt
from voice_memory.memory.similarity import is_near_duplicate
from voice_memory.memory.types import (
    FlashExtractionResult,
    InteractionEvent,
    MemoryRecord,
    describe_records,
    now_ms,
    render_dialogue,
)

logger = logging.getLogger(__name__)


def build_flash_window(
    events: Sequence[InteractionEvent], max_turns: int
) -> list[InteractionEvent]:
    """Most recent ``2 * max_turns`` events, starting on a user event.

    Returns an empty list when the slice holds no user event at all.
    """

    recent = list(events[-(2 * max_turns) :]) if max_turns > 0 else []
    for index, event in enumerate(recent):
        if event.role == "user":
            return recent[index:]
    return []


def dedupe_by_similarity(
    records: Sequence[MemoryRecord], threshold: float
) -> list[MemoryRecord]:
    """Greedy in-order dedup: drop a record close to any earlier kept one."""

    kept: list[MemoryRecord] = []
    for record in records:
        if is_near_duplicate(record.embedding, (item.embedding for item in kept), threshold):
            continue
        kept.append(record)
    return kept


class FlashExtractor:
    """Extracts short-horizon facts from the recent dialogue window."""

    label = "Flash Memory"

    def __init__(
        self,
        completion: CompletionService,
        embedder: Embedder,
        *,
        max_history_turns: int = 10,
        max_flash_memory: int = 4,
        max_topics_per_memory: int = 3,
        similarity_threshold: float = 0.85,
        timeout_sec: float = DEFAULT_CALL_TIMEOUT_SEC,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self._completion = completion
        self._embedder = embedder
        self._max_history_turns = max(1, max_history_turns)
        self._parse_options = ParseOptions(
            max_fallback_items=max(1, max_flash_memory),
            max_topics=max(1, max_topics_per_memory),
        )
        self._similarity_threshold = similarity_threshold
        self._timeout_sec = timeout_sec
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def extract(self, events: Sequence[InteractionEvent]) -> FlashExtractionResult:
        window = build_flash_window(events, self._max_history_turns)
        if not window:
            return FlashExtractionResult()

        prompt = render_flash_prompt(render_dialogue(window))
        output = await complete_or_none(
            self._completion,
            prompt,
            label=self.label,
            timeout_sec=self._timeout_sec,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        candidates = self.parse(output or "")
        if not candidates:
            return FlashExtractionResult()

        vectors = await embed_or_none(
            self._embedder,
            [candidate.text for candidate in candidates],
            label=self.label,
            timeout_sec=self._timeout_sec,
        )
        if vectors is None:
            return FlashExtractionResult()

        created_at = now_ms()
        records = [
            MemoryRecord(
                text=candidate.text,
                embedding=tuple(vector),
                topics=candidate.topics,
                created_at=created_at,
            )
            for candidate, vector in zip(candidates, vectors)
        ]
        kept = dedupe_by_similarity(records, self._similarity_threshold)
        if kept:
            logger.info("[%s] Created %s new memory record(s)", self.label, len(kept))
            logger.debug("[%s] Records:\n%s", self.label, describe_records(kept))
        else:
            logger.info(
                "[%s] Parsed %s record(s) but all were filtered out as duplicates",
                self.label,
                len(records),
            )
        return FlashExtractionResult(records=tuple(kept))

    def parse(self, output: str) -> list[FlashCandidate]:
        """Turn raw completion text into candidates; skip and parse failures give []."""

        if not output.strip() or SKIP_SENTINEL in output:
            return []
        outcome = parse_flash_output(output, self._parse_options)
        if not outcome.ok:
            logger.debug("[%s] Output was not parseable: %s", self.label, outcome.reason)
            return []
        return list(outcome.candidates)
