from __future__ import annotations

from typing import Any

from voice_memory.providers.base import (
    HTTPProviderAdapter,
    LLMResult,
    ProviderError,
    ProviderRuntimeConfig,
    require_api_key,
)


class OpenAIAdapter(HTTPProviderAdapter):
    """Adapter for OpenAI-compatible chat completion APIs."""

    provider_label = "OpenAI"

    async def generate(
        self,
        cfg: ProviderRuntimeConfig,
        messages: list[dict],
        *,
        max_tokens: int,
        temperature: float,
    ) -> LLMResult:
        api_key = require_api_key(cfg.api_key, self.provider_label)
        url = self._join_url(cfg.base_url, "/v1", "/v1/chat/completions")
        payload = {
            "model": cfg.model_name,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        data = await self._request_json(
            "POST", url, headers={"Authorization": f"Bearer {api_key}"}, json=payload
        )
        return LLMResult(
            content=self._parse_content(data),
            model_provider=cfg.provider,
            model_name=cfg.model_name,
            token_in=self._get_int(data, "usage", "prompt_tokens"),
            token_out=self._get_int(data, "usage", "completion_tokens"),
        )

    @staticmethod
    def _parse_content(data: dict[str, Any]) -> str:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProviderError("PROVIDER_PARSE_ERROR", "No choices returned by provider.")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ProviderError("PROVIDER_PARSE_ERROR", "Provider returned no message content.")
        return content
