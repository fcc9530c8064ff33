"""Timing, token accounting and escalation records for human review."""

from __future__ import annotations

import hashlib
import math
import os
import time
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

TOKENS_PER_WORD = 1.3
MAX_ESCALATION_RECORDS = 1000


@dataclass(slots=True)
class EscalationRecord:
    escalation_id: str
    timestamp_utc: str
    session_hash: str
    query: str
    answer: str
    confidence: float
    reason: str
    locale: str
    latency_ms: float


class EscalationSink(Protocol):
    """Receives escalated interactions for downstream human review."""

    def record(self, record: EscalationRecord) -> None:
        ...


class EscalationStore:
    """Bounded in-memory escalation queue used when no external sink is wired."""

    def __init__(self, max_records: int = MAX_ESCALATION_RECORDS) -> None:
        self._records: deque[EscalationRecord] = deque(maxlen=max_records)

    def record(self, record: EscalationRecord) -> None:
        self._records.append(record)

    def list_recent(self, limit: int = 20) -> list[EscalationRecord]:
        return list(self._records)[-limit:]


def new_escalation_record(
    *,
    session_id: str | None,
    query: str,
    answer: str,
    confidence: float,
    reason: str,
    locale: str,
    latency_ms: float,
) -> EscalationRecord:
    return EscalationRecord(
        escalation_id=str(uuid.uuid4()),
        timestamp_utc=datetime.now(timezone.utc).isoformat(),
        session_hash=hash_identifier(session_id) if session_id else "anonymous",
        query=query,
        answer=answer,
        confidence=confidence,
        reason=reason,
        locale=locale,
        latency_ms=latency_ms,
    )


class Timer:
    """Simple context timer used by the pipeline stages."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_tokens(text: str) -> int:
    if not text.strip():
        return 0
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def trim_to_token_budget(text: str, max_tokens: int) -> str:
    words = text.split()
    max_words = math.floor(max_tokens / TOKENS_PER_WORD)
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words]) + "…"


def hash_identifier(identifier: str) -> str:
    """Salted SHA-256 of a session or user id, truncated for log readability."""
    salt = os.getenv("HASH_SALT", "civic-rag")
    return hashlib.sha256(f"{salt}:{identifier}".encode("utf-8")).hexdigest()[:16]
