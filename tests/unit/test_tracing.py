import pytest

from civic_rag.obs.tracing import (
    EscalationRecord,
    EscalationStore,
    estimate_tokens,
    hash_identifier,
    new_escalation_record,
    trim_to_token_budget,
)


def _record(query: str) -> EscalationRecord:
    return new_escalation_record(
        session_id="s1",
        query=query,
        answer="answer",
        confidence=0.4,
        reason="low_confidence",
        locale="en",
        latency_ms=12.0,
    )


def test_escalation_store_keeps_only_the_newest_records() -> None:
    store = EscalationStore(max_records=2)

    for query in ("first", "second", "third"):
        store.record(_record(query))

    assert [record.query for record in store.list_recent()] == ["second", "third"]
    assert [record.query for record in store.list_recent(limit=1)] == ["third"]


def test_escalation_record_hashes_the_session() -> None:
    record = _record("q")
    anonymous = new_escalation_record(
        session_id=None,
        query="q",
        answer="a",
        confidence=0.1,
        reason="voice_failure",
        locale="ml",
        latency_ms=0.0,
    )

    assert record.session_hash == hash_identifier("s1")
    assert record.session_hash != "s1"
    assert anonymous.session_hash == "anonymous"
    assert record.escalation_id != anonymous.escalation_id


def test_hash_identifier_depends_on_salt(monkeypatch: pytest.MonkeyPatch) -> None:
    default = hash_identifier("voter-7")
    monkeypatch.setenv("HASH_SALT", "other")

    assert len(default) == 16
    assert hash_identifier("voter-7") != default


def test_token_estimate_and_trim() -> None:
    text = " ".join(f"w{i}" for i in range(10))

    assert estimate_tokens("   ") == 0
    assert estimate_tokens("one two three") == 4
    assert trim_to_token_budget(text, 100) == text
    assert trim_to_token_budget(text, 5) == "w0 w1 w2…"
