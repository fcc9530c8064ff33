"""Timeout, retry, circuit breaking and response caching for provider calls."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from civic_rag.config import ResilienceConfig
from civic_rag.provider.errors import CircuitOpenError, is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


@dataclass
class CacheEntry(Generic[T]):
    value: T
    expiry: float


class TTLCache(Generic[T]):
    """Mutex-guarded map whose entries expire a fixed time after insertion."""

    def __init__(self, ttl_seconds: float, *, clock: Clock = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> T | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expiry:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: T) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expiry=self._clock() + self.ttl_seconds)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(slots=True)
class CircuitState:
    failures: int = 0
    last_failure: float = 0.0
    open: bool = False
    trial_in_flight: bool = False


class CircuitBreaker:
    """Per-endpoint failure counters with a timed half-open trial.

    States per key:
    - closed: calls pass; each failed call increments ``failures``.
    - open: reached once ``failures >= failure_threshold``; calls fail fast
      until ``reset_seconds`` have elapsed since the last failure.
    - half-open: the first call after the window is let through as a trial.
      Concurrent callers still fail fast. Success closes the circuit and
      zeroes the counter, failure re-opens it with a fresh timestamp.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        reset_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._states: dict[str, CircuitState] = {}
        self._lock = threading.Lock()

    def state(self, key: str) -> CircuitState:
        with self._lock:
            return replace(self._states.get(key) or CircuitState())

    def before_call(self, key: str) -> None:
        with self._lock:
            state = self._states.setdefault(key, CircuitState())
            if not state.open:
                return
            window_elapsed = self._clock() - state.last_failure >= self.reset_seconds
            if not window_elapsed or state.trial_in_flight:
                raise CircuitOpenError(key)
            state.trial_in_flight = True
        logger.info("circuit_half_open endpoint=%s", key)

    def record_success(self, key: str) -> None:
        with self._lock:
            state = self._states.setdefault(key, CircuitState())
            was_open = state.open
            state.failures = 0
            state.open = False
            state.trial_in_flight = False
        if was_open:
            logger.info("circuit_closed endpoint=%s", key)

    def record_failure(self, key: str) -> None:
        with self._lock:
            state = self._states.setdefault(key, CircuitState())
            state.failures += 1
            state.last_failure = self._clock()
            state.trial_in_flight = False
            opened = state.failures >= self.failure_threshold and not state.open
            if state.failures >= self.failure_threshold:
                state.open = True
            failures = state.failures
        if opened:
            logger.warning("circuit_opened endpoint=%s failures=%d", key, failures)

    def release_trial(self, key: str) -> None:
        with self._lock:
            state = self._states.get(key)
            if state is not None:
                state.trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._states.clear()


class ResilienceClient:
    """The single gateway every provider call passes through.

    Owns the circuit breaker and the three response caches so that their
    lifetime is the lifetime of this instance, not of the process module.
    """

    def __init__(
        self,
        config: ResilienceConfig | None = None,
        *,
        circuits: CircuitBreaker | None = None,
        embedding_cache: TTLCache[list[float]] | None = None,
        rerank_cache: TTLCache[Any] | None = None,
        answer_cache: TTLCache[Any] | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or ResilienceConfig()
        self.circuits = circuits or CircuitBreaker(
            failure_threshold=self.config.failure_threshold,
            reset_seconds=self.config.reset_seconds,
            clock=clock,
        )
        # Caches define __len__, so an injected empty cache is falsy.
        self.embedding_cache: TTLCache[list[float]] = (
            embedding_cache
            if embedding_cache is not None
            else TTLCache(self.config.embedding_ttl_seconds, clock=clock)
        )
        self.rerank_cache: TTLCache[Any] = (
            rerank_cache
            if rerank_cache is not None
            else TTLCache(self.config.rerank_ttl_seconds, clock=clock)
        )
        self.answer_cache: TTLCache[Any] = (
            answer_cache
            if answer_cache is not None
            else TTLCache(self.config.answer_ttl_seconds, clock=clock)
        )
        self._sleep = sleep

    async def call(self, endpoint_key: str, fn: Callable[[], Awaitable[T]]) -> T:
        self.circuits.before_call(endpoint_key)
        try:
            result = await self._call_with_retry(endpoint_key, fn)
        except asyncio.CancelledError:
            self.circuits.release_trial(endpoint_key)
            raise
        except Exception:
            self.circuits.record_failure(endpoint_key)
            raise
        self.circuits.record_success(endpoint_key)
        return result

    def reset(self) -> None:
        self.circuits.reset()
        self.embedding_cache.clear()
        self.rerank_cache.clear()
        self.answer_cache.clear()

    async def _call_with_retry(self, endpoint_key: str, fn: Callable[[], Awaitable[T]]) -> T:
        def _log_retry(state: RetryCallState) -> None:
            error = state.outcome.exception() if state.outcome is not None else None
            wait = state.next_action.sleep if state.next_action is not None else 0.0
            logger.warning(
                "provider_retry endpoint=%s attempt=%d wait=%.1fs error=%s",
                endpoint_key,
                state.attempt_number,
                wait,
                error,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(multiplier=self.config.backoff_base_seconds),
            retry=retry_if_exception(is_transient),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await asyncio.wait_for(fn(), timeout=self.config.timeout_seconds)
        raise RuntimeError(f"retry loop for {endpoint_key} ended without an outcome")
