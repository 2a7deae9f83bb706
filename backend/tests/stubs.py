"""Test doubles for the completion and embedding services."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Callable, Optional

from voice_memory.memory.embedder import Embedder, EmbeddingError
from voice_memory.memory.prompts import SKIP_SENTINEL
from voice_memory.memory.types import InteractionEvent


class StubCompletion:
    """Records prompts and answers from a fixed script or a responder function."""

    def __init__(
        self,
        responses: Optional[Sequence[str]] = None,
        *,
        responder: Optional[Callable[[str], str]] = None,
        default: str = SKIP_SENTINEL,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ) -> None:
        self._responses = list(responses or [])
        self._responder = responder
        self._default = default
        self._delay = delay
        self._error = error
        self.prompts: list[str] = []
        self.calls: list[dict] = []

    async def complete(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        self.prompts.append(prompt)
        self.calls.append({"max_tokens": max_tokens, "temperature": temperature})
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        if self._responder is not None:
            return self._responder(prompt)
        if self._responses:
            return self._responses.pop(0)
        return self._default


class StubEmbedder(Embedder):
    """Looks vectors up by exact text; unknown texts fall back to ``default``."""

    provider = "stub"
    model_name = "stub-embed"

    def __init__(
        self,
        vectors: Optional[dict[str, Sequence[float]]] = None,
        *,
        default: Optional[Sequence[float]] = None,
        dimension: int = 4,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.vectors = dict(vectors or {})
        self.default = list(default) if default is not None else None
        self.dimension = dimension
        self.fail = fail
        self.delay = delay
        self.calls: list[list[str]] = []

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise EmbeddingError("stub embedding failure")
        vectors = []
        for text in texts:
            if text in self.vectors:
                vectors.append(list(self.vectors[text]))
            elif self.default is not None:
                vectors.append(list(self.default))
            else:
                raise EmbeddingError(f"no stub vector for {text!r}")
        return vectors


def dialogue(*pairs: tuple[str, str]) -> list[InteractionEvent]:
    return [InteractionEvent(role=role, content=content) for role, content in pairs]


def user_turns(count: int) -> list[InteractionEvent]:
    """``count`` user/assistant exchanges."""

    events: list[InteractionEvent] = []
    for index in range(count):
        events.append(InteractionEvent(role="user", content=f"user message {index}"))
        events.append(InteractionEvent(role="assistant", content=f"assistant reply {index}"))
    return events
