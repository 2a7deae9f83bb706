from __future__ import annotations

import logging
from typing import Optional

from voice_memory.core.config import Settings
from voice_memory.providers.base import LLMAdapter, MockAdapter, ProviderRuntimeConfig
from voice_memory.providers.ollama_adapter import OllamaAdapter
from voice_memory.providers.openai_adapter import OpenAIAdapter

logger = logging.getLogger(__name__)


class CompletionClient:
    """Binds one adapter to one runtime config: prompt in, text out."""

    def __init__(
        self,
        adapter: LLMAdapter,
        cfg: ProviderRuntimeConfig,
        *,
        default_max_tokens: int = 800,
        default_temperature: float = 0.7,
    ) -> None:
        self._adapter = adapter
        self._cfg = cfg
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature

    @property
    def provider(self) -> str:
        return self._cfg.provider

    async def complete(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        result = await self._adapter.generate(
            self._cfg,
            [{"role": "user", "content": prompt}],
            max_tokens=max_tokens if max_tokens is not None else self.default_max_tokens,
            temperature=temperature if temperature is not None else self.default_temperature,
        )
        return result.content or ""


def create_completion_client(
    settings: Settings, adapters: Optional[dict[str, LLMAdapter]] = None
) -> CompletionClient:
    """Build the completion client selected by ``LLM_PROVIDER``."""

    registry: dict[str, LLMAdapter] = {
        "mock": MockAdapter(),
        "openai": OpenAIAdapter(),
        "ollama": OllamaAdapter(),
    }
    registry.update(adapters or {})
    provider = settings.llm_provider.strip().lower()
    if provider not in registry:
        logger.warning("Unknown LLM_PROVIDER=%s; fallback to mock", provider)
        provider = "mock"
    if provider == "openai" and not settings.llm_api_key.strip():
        logger.warning("LLM_PROVIDER=openai but LLM_API_KEY is missing; fallback to mock")
        provider = "mock"

    cfg = ProviderRuntimeConfig(
        provider=provider,
        model_name=settings.llm_model.strip() or "mock-1",
        base_url=settings.llm_base_url.strip() or _default_base_url(settings, provider),
        api_key=settings.llm_api_key.strip() or None,
    )
    return CompletionClient(
        registry[provider],
        cfg,
        default_max_tokens=settings.llm_max_tokens,
        default_temperature=settings.llm_temperature,
    )


def _default_base_url(settings: Settings, provider: str) -> Optional[str]:
    if provider == "openai":
        return settings.openai_base_url
    if provider == "ollama":
        return settings.ollama_base_url
    return None
