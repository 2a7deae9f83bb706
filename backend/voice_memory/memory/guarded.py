from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Optional, Protocol

from voice_memory.memory.embedder import Embedder, EmbeddingError
from voice_memory.providers.base import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT_SEC = 30.0


class CompletionService(Protocol):
    """Prompt in, completion text out."""

    async def complete(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Return the completion text for ``prompt``."""


async def complete_or_none(
    completion: CompletionService,
    prompt: str,
    *,
    label: str,
    timeout_sec: float = DEFAULT_CALL_TIMEOUT_SEC,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
) -> Optional[str]:
    """Call the completion service; failures and timeouts yield None."""

    try:
        return await asyncio.wait_for(
            completion.complete(prompt, max_tokens=max_tokens, temperature=temperature),
            timeout=timeout_sec,
        )
    except asyncio.TimeoutError:
        logger.warning("[%s] Completion timed out after %.1fs; skipping this turn", label, timeout_sec)
    except ProviderError as exc:
        logger.warning("[%s] Completion failed (%s): %s", label, exc.code, exc.message)
    except Exception:  # noqa: BLE001
        logger.exception("[%s] Completion failed unexpectedly", label)
    return None


async def embed_or_none(
    embedder: Embedder,
    texts: Sequence[str],
    *,
    label: str,
    timeout_sec: float = DEFAULT_CALL_TIMEOUT_SEC,
) -> Optional[list[list[float]]]:
    """Embed a batch; failures, timeouts and short or empty vectors yield None."""

    try:
        vectors = await asyncio.wait_for(embedder.embed_texts(list(texts)), timeout=timeout_sec)
    except asyncio.TimeoutError:
        logger.warning("[%s] Embedding timed out after %.1fs; skipping memory storage", label, timeout_sec)
        return None
    except EmbeddingError as exc:
        logger.warning("[%s] Failed to generate embeddings: %s. Skipping memory storage", label, exc)
        return None
    except Exception:  # noqa: BLE001
        logger.exception("[%s] Embedding failed unexpectedly", label)
        return None

    if len(vectors) != len(texts):
        logger.warning(
            "[%s] Embedding count mismatch (%s for %s texts); skipping memory storage",
            label,
            len(vectors),
            len(texts),
        )
        return None
    if any(not vector for vector in vectors):
        logger.warning("[%s] Embedding service returned an empty vector; skipping memory storage", label)
        return None
    return [[float(value) for value in vector] for vector in vectors]
