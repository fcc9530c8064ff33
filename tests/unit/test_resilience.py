import asyncio

import pytest

from civic_rag.config import ResilienceConfig
from civic_rag.provider.errors import CircuitOpenError, ProviderHTTPError
from civic_rag.provider.resilience import ResilienceClient, TTLCache


class _FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _client(clock: _FakeClock, sleeps: list[float]) -> ResilienceClient:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return ResilienceClient(ResilienceConfig(), clock=clock, sleep=_sleep)


@pytest.mark.asyncio
async def test_transient_errors_retry_with_exponential_backoff() -> None:
    sleeps: list[float] = []
    client = _client(_FakeClock(), sleeps)
    calls = 0

    async def _unavailable() -> dict:
        nonlocal calls
        calls += 1
        raise ProviderHTTPError(503, "busy")

    with pytest.raises(ProviderHTTPError):
        await client.call("chat:model", _unavailable)

    assert calls == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert client.circuits.state("chat:model").failures == 1


@pytest.mark.asyncio
async def test_non_transient_error_is_not_retried() -> None:
    sleeps: list[float] = []
    client = _client(_FakeClock(), sleeps)
    calls = 0

    async def _bad_request() -> dict:
        nonlocal calls
        calls += 1
        raise ProviderHTTPError(400, "bad request")

    with pytest.raises(ProviderHTTPError):
        await client.call("chat:model", _bad_request)

    assert calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_circuit_opens_after_five_failures_and_recovers_after_window() -> None:
    clock = _FakeClock()
    client = _client(clock, [])
    calls = 0
    healthy = False

    async def _endpoint() -> str:
        nonlocal calls
        calls += 1
        if not healthy:
            raise ProviderHTTPError(500, "boom")
        return "ok"

    for _ in range(5):
        clock.now += 1.0
        with pytest.raises(ProviderHTTPError):
            await client.call("rerank:model", _endpoint)
    assert calls == 5

    with pytest.raises(CircuitOpenError):
        await client.call("rerank:model", _endpoint)
    assert calls == 5

    clock.now += 60.0
    healthy = True
    assert await client.call("rerank:model", _endpoint) == "ok"
    assert calls == 6
    assert client.circuits.state("rerank:model").open is False
    assert client.circuits.state("rerank:model").failures == 0


@pytest.mark.asyncio
async def test_failed_half_open_trial_reopens_circuit() -> None:
    clock = _FakeClock()
    client = _client(clock, [])

    async def _broken() -> str:
        raise ProviderHTTPError(500, "boom")

    for _ in range(5):
        with pytest.raises(ProviderHTTPError):
            await client.call("chat:model", _broken)

    clock.now += 61.0
    with pytest.raises(ProviderHTTPError):
        await client.call("chat:model", _broken)
    with pytest.raises(CircuitOpenError):
        await client.call("chat:model", _broken)


@pytest.mark.asyncio
async def test_cancelled_trial_releases_half_open_slot() -> None:
    clock = _FakeClock()
    client = _client(clock, [])

    async def _broken() -> str:
        raise ProviderHTTPError(500, "boom")

    for _ in range(5):
        with pytest.raises(ProviderHTTPError):
            await client.call("chat:model", _broken)
    clock.now += 61.0

    started = asyncio.Event()

    async def _hang() -> str:
        started.set()
        await asyncio.Event().wait()
        return "never"

    task = asyncio.create_task(client.call("chat:model", _hang))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert client.circuits.state("chat:model").trial_in_flight is False

    async def _ok() -> str:
        return "ok"

    assert await client.call("chat:model", _ok) == "ok"


@pytest.mark.asyncio
async def test_circuits_are_tracked_per_endpoint() -> None:
    client = _client(_FakeClock(), [])

    async def _broken() -> str:
        raise ProviderHTTPError(500, "boom")

    async def _ok() -> str:
        return "ok"

    for _ in range(5):
        with pytest.raises(ProviderHTTPError):
            await client.call("embeddings:model", _broken)

    assert await client.call("chat:model", _ok) == "ok"


def test_ttl_cache_expires_entries() -> None:
    clock = _FakeClock()
    cache: TTLCache[str] = TTLCache(10.0, clock=clock)
    cache.set("key", "value")

    clock.now = 10.0
    assert cache.get("key") == "value"

    clock.now = 10.5
    assert cache.get("key") is None
    assert len(cache) == 0


def test_reset_clears_caches_and_circuits() -> None:
    client = ResilienceClient()
    client.embedding_cache.set("q", [0.1])
    client.answer_cache.set("a", "answer")
    client.circuits.record_failure("chat:model")

    client.reset()

    assert client.embedding_cache.get("q") is None
    assert client.answer_cache.get("a") is None
    assert client.circuits.state("chat:model").failures == 0


def test_injected_empty_caches_are_used() -> None:
    embedding_cache: TTLCache[list[float]] = TTLCache(5.0)
    client = ResilienceClient(embedding_cache=embedding_cache)

    assert client.embedding_cache is embedding_cache
