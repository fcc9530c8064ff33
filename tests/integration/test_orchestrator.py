import pytest

from civic_rag import CivicAssistant, RAGInput
from civic_rag.generation.generator import FALLBACK_MODEL, template_fallback
from civic_rag.schemas import ChatMessage
from civic_rag.types import GenerationResult
from civic_rag.understanding.safety import NEUTRAL_RESPONSES


def _count_retrievals(monkeypatch: pytest.MonkeyPatch, assistant: CivicAssistant) -> list[str]:
    calls: list[str] = []
    original = assistant.retriever.retrieve

    async def counting(query, locale, max_tokens):
        calls.append(query)
        return await original(query, locale, max_tokens)

    monkeypatch.setattr(assistant.retriever, "retrieve", counting)
    return calls


class _FlakyModel:
    """Stands in for the chat model; answers with the template fallback while down."""

    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy

    async def generate(self, system_prompt, user_prompt, locale, *, query=None):
        if not self.healthy:
            return template_fallback(query or user_prompt, locale)
        return GenerationResult(
            text="Fill Form 6 at voters.eci.gov.in with age and address proof [Source 1].",
            confidence=0.85,
            prompt_tokens=400,
            completion_tokens=30,
            total_tokens=430,
            model="llama-test",
        )


@pytest.mark.asyncio
async def test_registration_question_is_answered_without_escalation() -> None:
    async with CivicAssistant() as assistant:
        output = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))

    assert output.escalate is False
    assert output.confidence >= 0.55
    assert "Form 6" in output.text
    assert output.generator_model == FALLBACK_MODEL
    assert 1 <= len(output.sources) <= 3
    assert all(source.excerpt.endswith("...") for source in output.sources)
    assert output.actionable[0].action == "check_epic"
    assert output.trace.retrieved_count > 0
    assert output.trace.reranked_count == 3
    assert output.trace.prompt_version.startswith("v")
    assert len(output.prompt_version_hash) == 12
    assert assistant.escalations.list_recent() == []


@pytest.mark.asyncio
async def test_party_question_is_screened_and_escalated() -> None:
    async with CivicAssistant() as assistant:
        output = await assistant.rag_orchestrate(
            RAGInput(query="Which party should I vote for?"), session_id="session-1"
        )
        records = assistant.escalations.list_recent()

    assert output.text == NEUTRAL_RESPONSES["en"]
    assert output.confidence == 0.99
    assert output.escalate is True
    assert output.sources == []
    assert len(records) == 1
    assert records[0].reason == "safety:political_query"
    assert records[0].session_hash not in ("anonymous", "session-1")


@pytest.mark.asyncio
async def test_repeated_stateless_question_is_served_from_cache(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async with CivicAssistant() as assistant:
        calls = _count_retrievals(monkeypatch, assistant)
        assistant.orchestrator.generator = _FlakyModel()

        first = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))
        second = await assistant.rag_orchestrate(RAGInput(query="  how to register as a VOTER? "))

    assert len(calls) == 1
    assert second.text == first.text
    assert second.confidence == first.confidence
    assert second.generator_model == "llama-test"


@pytest.mark.asyncio
async def test_fallback_answer_is_not_cached_once_the_model_recovers(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    model = _FlakyModel(healthy=False)
    async with CivicAssistant() as assistant:
        calls = _count_retrievals(monkeypatch, assistant)
        assistant.orchestrator.generator = model

        degraded = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))
        model.healthy = True
        recovered = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))

    assert degraded.generator_model == FALLBACK_MODEL
    assert degraded.escalate is False
    assert recovered.generator_model == "llama-test"
    assert recovered.text.endswith("[Source 1].")
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_cached_answer_is_isolated_from_caller_mutation() -> None:
    async with CivicAssistant() as assistant:
        assistant.orchestrator.generator = _FlakyModel()

        first = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))
        source_count = len(first.sources)
        first.sources.clear()
        first.reranker_scores.clear()
        second = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))
        second.sources.clear()
        third = await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))

    assert source_count >= 1
    assert len(second.reranker_scores) == 3
    assert len(third.sources) == source_count


@pytest.mark.asyncio
async def test_history_and_user_id_bypass_the_cache(monkeypatch: pytest.MonkeyPatch) -> None:
    history = [ChatMessage(role="user", content="I just turned 18")]

    async with CivicAssistant(memory=lambda user_id: "Lives in Nattakom") as assistant:
        calls = _count_retrievals(monkeypatch, assistant)

        await assistant.rag_orchestrate(RAGInput(query="How to register as a voter?"))
        await assistant.rag_orchestrate(
            RAGInput(query="How to register as a voter?", conversation_history=history)
        )
        await assistant.rag_orchestrate(
            RAGInput(query="How to register as a voter?", user_id="voter-7")
        )

    assert len(calls) == 3


@pytest.mark.asyncio
async def test_internal_failure_returns_generic_answer_and_escalates(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def broken(query, locale, max_tokens):
        raise RuntimeError("index corrupted")

    async with CivicAssistant() as assistant:
        monkeypatch.setattr(assistant.retriever, "retrieve", broken)
        output = await assistant.rag_orchestrate(RAGInput(query="What is NOTA?", locale="ml"))
        records = assistant.escalations.list_recent()

    assert output.confidence == 0.0
    assert output.escalate is True
    assert output.locale == "ml"
    assert "ceokerala.gov.in" in output.text
    assert [record.reason for record in records] == ["low_confidence"]
    assert records[0].session_hash == "anonymous"


@pytest.mark.asyncio
async def test_escalation_record_redacts_personal_data() -> None:
    async with CivicAssistant() as assistant:
        await assistant.rag_orchestrate(
            RAGInput(query="Which party is best? My phone is 9876543210", user_id="voter-9")
        )
        record = assistant.escalations.list_recent()[0]

    assert "9876543210" not in record.query
    assert "[PHONE REDACTED]" in record.query
