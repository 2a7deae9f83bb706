from __future__ import annotations

from voice_memory.providers.base import (
    HTTPProviderAdapter,
    LLMResult,
    ProviderError,
    ProviderRuntimeConfig,
)


class OllamaAdapter(HTTPProviderAdapter):
    """Adapter for the Ollama local API."""

    provider_label = "Ollama"

    async def generate(
        self,
        cfg: ProviderRuntimeConfig,
        messages: list[dict],
        *,
        max_tokens: int,
        temperature: float,
    ) -> LLMResult:
        url = self._join_url(cfg.base_url, "/api", "/api/chat")
        payload = {
            "model": cfg.model_name,
            "messages": messages,
            "stream": False,
            "options": {"num_predict": max_tokens, "temperature": temperature},
        }
        data = await self._request_json("POST", url, json=payload)
        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ProviderError("PROVIDER_PARSE_ERROR", "Provider returned no message content.")
        return LLMResult(
            content=content,
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=self._get_int(data, "prompt_eval_count"),
            token_out=self._get_int(data, "eval_count"),
        )
