from __future__ import annotations

import json

import httpx
import pytest

from voice_memory.core.config import Settings
from voice_memory.memory.embedder import DeterministicEmbedder, EmbeddingError, OpenAIEmbedder
from voice_memory.memory.prompts import SKIP_SENTINEL
from voice_memory.providers.base import MockAdapter, ProviderError, ProviderRuntimeConfig
from voice_memory.providers.completion import CompletionClient, create_completion_client
from voice_memory.providers.ollama_adapter import OllamaAdapter
from voice_memory.providers.openai_adapter import OpenAIAdapter


@pytest.mark.anyio
async def test_openai_adapter_generate():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/chat/completions":
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": "hello from openai"}}],
                    "usage": {"prompt_tokens": 5, "completion_tokens": 7},
                },
            )
        return httpx.Response(404, json={"error": "not found"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        adapter = OpenAIAdapter(http_client=client)
        cfg = ProviderRuntimeConfig(
            provider="openai",
            model_name="gpt-test",
            base_url="https://api.openai.com/v1",
            api_key="sk-test-123456",
        )
        result = await adapter.generate(
            cfg, [{"role": "user", "content": "hi"}], max_tokens=800, temperature=0.7
        )

    assert result.content == "hello from openai"
    assert result.token_in == 5
    assert result.token_out == 7
    assert seen["auth"] == "Bearer sk-test-123456"
    assert seen["body"]["max_tokens"] == 800
    assert seen["body"]["temperature"] == 0.7


@pytest.mark.anyio
async def test_ollama_adapter_generate():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/chat":
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "message": {"content": "hello from ollama"},
                    "prompt_eval_count": 3,
                    "eval_count": 4,
                },
            )
        return httpx.Response(404, json={"error": "not found"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        adapter = OllamaAdapter(http_client=client)
        cfg = ProviderRuntimeConfig(
            provider="ollama", model_name="llama3", base_url="http://localhost:11434"
        )
        result = await adapter.generate(
            cfg, [{"role": "user", "content": "hi"}], max_tokens=64, temperature=0.2
        )

    assert result.content == "hello from ollama"
    assert result.token_in == 3
    assert result.token_out == 4
    assert seen["body"]["stream"] is False
    assert seen["body"]["options"] == {"num_predict": 64, "temperature": 0.2}


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status,code,retryable",
    [
        (429, "PROVIDER_RATE_LIMIT", True),
        (503, "PROVIDER_UPSTREAM", True),
        (401, "PROVIDER_BAD_STATUS", False),
    ],
)
async def test_openai_adapter_maps_status_errors(status, code, retryable):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": {"message": "nope"}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = OpenAIAdapter(http_client=client)
        cfg = ProviderRuntimeConfig(
            provider="openai", model_name="gpt-test", base_url="https://x.test", api_key="k"
        )
        with pytest.raises(ProviderError) as exc_info:
            await adapter.generate(cfg, [], max_tokens=1, temperature=0.0)

    assert exc_info.value.code == code
    assert exc_info.value.retryable is retryable
    assert exc_info.value.status_code == status
    assert "nope" in exc_info.value.message


@pytest.mark.anyio
async def test_openai_adapter_requires_api_key():
    adapter = OpenAIAdapter()
    cfg = ProviderRuntimeConfig(provider="openai", model_name="m", base_url="https://x.test")
    with pytest.raises(ProviderError) as exc_info:
        await adapter.generate(cfg, [], max_tokens=1, temperature=0.0)
    assert exc_info.value.code == "API_KEY_REQUIRED"


@pytest.mark.anyio
async def test_completion_client_applies_defaults():
    captured: dict = {}

    class RecordingAdapter:
        async def generate(self, cfg, messages, *, max_tokens, temperature):
            from voice_memory.providers.base import LLMResult

            captured.update(messages=messages, max_tokens=max_tokens, temperature=temperature)
            return LLMResult(content="ok", model_provider=cfg.provider, model_name=cfg.model_name)

    client = CompletionClient(
        RecordingAdapter(),
        ProviderRuntimeConfig(provider="stub", model_name="m"),
        default_max_tokens=800,
        default_temperature=0.7,
    )

    assert await client.complete("prompt") == "ok"
    assert captured == {
        "messages": [{"role": "user", "content": "prompt"}],
        "max_tokens": 800,
        "temperature": 0.7,
    }
    await client.complete("prompt", max_tokens=10, temperature=0.0)
    assert captured["max_tokens"] == 10 and captured["temperature"] == 0.0


@pytest.mark.anyio
async def test_mock_adapter_always_skips():
    client = CompletionClient(MockAdapter(), ProviderRuntimeConfig(provider="mock", model_name="m"))
    assert await client.complete("anything") == SKIP_SENTINEL


@pytest.mark.parametrize(
    "env,expected",
    [
        ({"LLM_PROVIDER": "mock"}, "mock"),
        ({"LLM_PROVIDER": "unknown"}, "mock"),
        ({"LLM_PROVIDER": "openai"}, "mock"),
        ({"LLM_PROVIDER": "openai", "LLM_API_KEY": "sk-abcdefgh"}, "openai"),
        ({"LLM_PROVIDER": "ollama"}, "ollama"),
    ],
)
def test_completion_client_provider_selection(monkeypatch, env, expected):
    for key in ("LLM_PROVIDER", "LLM_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)

    client = create_completion_client(Settings())

    assert client.provider == expected


@pytest.mark.anyio
async def test_completion_client_merges_injected_adapters(monkeypatch):
    class EchoAdapter:
        async def generate(self, cfg, messages, *, max_tokens, temperature):
            from voice_memory.providers.base import LLMResult

            return LLMResult(
                content=f"echo:{cfg.provider}", model_provider=cfg.provider, model_name=cfg.model_name
            )

    monkeypatch.setenv("LLM_PROVIDER", "ollama")
    injected = create_completion_client(Settings(), adapters={"ollama": EchoAdapter()})
    assert injected.provider == "ollama"
    assert await injected.complete("hi") == "echo:ollama"

    monkeypatch.setenv("LLM_PROVIDER", "unknown")
    fallback = create_completion_client(Settings(), adapters={"ollama": EchoAdapter()})
    assert fallback.provider == "mock"
    assert await fallback.complete("hi") == SKIP_SENTINEL


@pytest.mark.anyio
async def test_openai_embedder_orders_rows_by_index():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/embeddings"
        assert json.loads(request.content)["input"] == ["a", "b"]
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [0.0, 2.0]},
                    {"index": 0, "embedding": [3.0, 0.0]},
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        embedder = OpenAIEmbedder(
            base_url="https://api.openai.com/v1",
            api_key="sk-test",
            model_name="text-embedding-3-small",
            dimension=2,
            http_client=client,
        )
        vectors = await embedder.embed_texts(["a", "b"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]


@pytest.mark.anyio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "down"}),
        httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0, 0.0]}]}),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_openai_embedder_rejects_bad_responses(response):
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: response)) as client:
        embedder = OpenAIEmbedder(
            base_url="https://api.openai.com",
            api_key="sk-test",
            model_name="m",
            dimension=2,
            http_client=client,
        )
        with pytest.raises(EmbeddingError):
            await embedder.embed_texts(["a"])


@pytest.mark.anyio
async def test_deterministic_embedder_is_stable_and_normalized():
    embedder = DeterministicEmbedder(dimension=32)
    first, second, other = await embedder.embed_texts(
        ["I like green tea", "I like green tea", "My cat is called Milo"]
    )
    assert first == second
    assert first != other
    assert sum(value * value for value in first) == pytest.approx(1.0)
    assert len(first) == 32
