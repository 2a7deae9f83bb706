from __future__ import annotations

import logging
from collections.abc import Sequence

from voice_memory.memory.embedder import Embedder
from voice_memory.memory.guarded import (
    DEFAULT_CALL_TIMEOUT_SEC,
    CompletionService,
    complete_or_none,
    embed_or_none,
)
from voice_memory.memory.prompts import SKIP_SENTINEL, render_long_term_prompt
from voice_memory.memory.types import (
    SUMMARY_TOPIC,
    InteractionEvent,
    LongTermExtractionResult,
    MemoryRecord,
    MemorySnapshot,
    describe_records,
    render_dialogue,
)

logger = logging.getLogger(__name__)


class LongTermExtractor:
    """Re-derives the conversation summary from the prior summary plus new dialogue."""

    label = "Long Term Memory"

    def __init__(
        self,
        completion: CompletionService,
        embedder: Embedder,
        *,
        max_history_events: int = 10,
        timeout_sec: float = DEFAULT_CALL_TIMEOUT_SEC,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self._completion = completion
        self._embedder = embedder
        self._max_history_events = max(1, max_history_events)
        self._timeout_sec = timeout_sec
        self._max_tokens = max_tokens
        self._temperature = temperature

    def build_prompt(
        self, events: Sequence[InteractionEvent], snapshot: MemorySnapshot
    ) -> str:
        window = list(events[-self._max_history_events :])
        return render_long_term_prompt(
            dialogue_lines=render_dialogue(window),
            previous_long_term=snapshot.long_term_text(),
            topic=SUMMARY_TOPIC,
        )

    async def extract(
        self, events: Sequence[InteractionEvent], snapshot: MemorySnapshot
    ) -> LongTermExtractionResult:
        prompt = self.build_prompt(events, snapshot)
        logger.debug("[%s] Rendered prompt:\n%s", self.label, prompt)
        output = await complete_or_none(
            self._completion,
            prompt,
            label=self.label,
            timeout_sec=self._timeout_sec,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        summary = (output or "").strip()
        if not summary or summary == SKIP_SENTINEL:
            return LongTermExtractionResult()

        vectors = await embed_or_none(
            self._embedder, [summary], label=self.label, timeout_sec=self._timeout_sec
        )
        if vectors is None:
            return LongTermExtractionResult()

        record = MemoryRecord(text=summary, embedding=tuple(vectors[0]), topics=(SUMMARY_TOPIC,))
        logger.info("[%s] Created 1 new memory record", self.label)
        logger.debug("[%s] Record:\n%s", self.label, describe_records([record]))
        return LongTermExtractionResult(records=(record,))
