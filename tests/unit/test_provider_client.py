import json

import httpx
import pytest

from civic_rag.config import ProviderConfig, ResilienceConfig
from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.errors import MalformedResponseError, ProviderNotConfiguredError
from civic_rag.provider.resilience import ResilienceClient


async def _no_sleep(_: float) -> None:
    return None


def _provider(handler, *, api_key: str = "test-key") -> InferenceProvider:
    resilience = ResilienceClient(ResilienceConfig(), sleep=_no_sleep)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return InferenceProvider(ProviderConfig(api_key=api_key), resilience, http_client=http_client)


@pytest.mark.asyncio
async def test_chat_completion_parses_choice_and_usage() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer test-key"
        return httpx.Response(
            200,
            json={
                "choices": [{"message": {"content": "Form 6"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
            },
        )

    provider = _provider(handler)
    completion = await provider.chat_completion(
        [{"role": "user", "content": "hi"}], max_tokens=50, temperature=0.1, top_p=0.95
    )

    assert completion.text == "Form 6"
    assert completion.total_tokens == 15
    assert completion.finish_reason == "stop"
    assert seen[0]["max_tokens"] == 50
    assert seen[0]["stream"] is False


@pytest.mark.asyncio
async def test_transient_status_is_retried_then_succeeds() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts < 3:
            return httpx.Response(429, text="slow down")
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5, 0.5]}]})

    provider = _provider(handler)

    assert await provider.create_embeddings(["booth"]) == [[0.5, 0.5]]
    assert attempts == 3


@pytest.mark.asyncio
async def test_embeddings_are_reordered_by_index() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": [{"index": 1, "embedding": [0.0, 1.0]}, {"index": 0, "embedding": [1.0, 0.0]}]},
        )

    provider = _provider(handler)

    assert await provider.create_embeddings(["a", "b"]) == [[1.0, 0.0], [0.0, 1.0]]


@pytest.mark.asyncio
async def test_missing_choices_is_malformed() -> None:
    provider = _provider(lambda request: httpx.Response(200, json={"choices": []}))

    with pytest.raises(MalformedResponseError):
        await provider.chat_completion([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_unconfigured_provider_fails_before_network_and_is_not_counted() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    provider = _provider(handler, api_key="")

    with pytest.raises(ProviderNotConfiguredError):
        await provider.rerank("booth", ["doc"], top_n=1)

    model = provider.config.reranker_model
    assert provider.resilience.circuits.state(f"rerank:{model}").failures == 0


@pytest.mark.asyncio
async def test_transcribe_posts_multipart_and_reads_language() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert b"verbose_json" in request.content
        return httpx.Response(200, json={"text": " hello ", "language": "en", "duration": 1.5})

    provider = _provider(handler)
    transcription = await provider.transcribe(b"RIFF", filename="a.wav", content_type="audio/wav")

    assert transcription.text == "hello"
    assert transcription.language == "en"
    assert transcription.duration == 1.5


def test_provider_config_reads_environment() -> None:
    config = ProviderConfig.from_env(
        {"FIREWORKS_API_KEY": "k", "MAX_GENERATION_TOKENS": "900", "RERANKER_MODEL": "r"}
    )

    assert config.configured
    assert config.max_generation_tokens == 900
    assert config.reranker_model == "r"
    assert config.max_context_tokens == 6000
    assert not ProviderConfig.from_env({}).configured
