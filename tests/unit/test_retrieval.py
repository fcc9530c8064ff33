import json

import httpx
import pytest

from civic_rag.config import ProviderConfig, ResilienceConfig
from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.resilience import ResilienceClient
from civic_rag.retrieval.embeddings import EmbeddingService, cosine_similarity
from civic_rag.retrieval.knowledge import build_knowledge_base
from civic_rag.retrieval.reranker import CrossEncoderReranker
from civic_rag.retrieval.retriever import HybridRetriever, tokenize_query
from civic_rag.types import RetrievalMethod


async def _no_sleep(_: float) -> None:
    return None


def _provider(handler=None, *, api_key: str = "test-key") -> InferenceProvider:
    def _unexpected(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"unexpected request to {request.url}")

    resilience = ResilienceClient(ResilienceConfig(), sleep=_no_sleep)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler or _unexpected))
    return InferenceProvider(ProviderConfig(api_key=api_key), resilience, http_client=http_client)


def _embedding_handler(calls: list[list[str]]):
    def handler(request: httpx.Request) -> httpx.Response:
        texts = json.loads(request.content)["input"]
        calls.append(texts)
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": i, "embedding": [1.0, float("register" in text.lower())]}
                    for i, text in enumerate(texts)
                ]
            },
        )

    return handler


@pytest.mark.asyncio
async def test_query_embedding_is_cached_within_ttl() -> None:
    calls: list[list[str]] = []
    service = EmbeddingService(_provider(_embedding_handler(calls)))

    first = await service.embed_query("Where is my booth?")
    second = await service.embed_query("  where is my booth?")

    assert first == second
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_failed_batch_leaves_none_slots() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        texts = json.loads(request.content)["input"]
        if "bad" in texts:
            return httpx.Response(400, text="rejected")
        return httpx.Response(
            200, json={"data": [{"index": i, "embedding": [1.0]} for i in range(len(texts))]}
        )

    service = EmbeddingService(_provider(handler), batch_size=2)
    vectors = await service.embed_documents(["a", "b", "bad", "c"])

    assert vectors == [[1.0], [1.0], None, None]


def test_cosine_similarity_handles_degenerate_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0


def test_tokenize_query_strips_punctuation() -> None:
    assert tokenize_query("How to register, as a voter?") == [
        "how",
        "to",
        "register",
        "as",
        "a",
        "voter",
    ]


@pytest.mark.asyncio
async def test_lexical_retrieval_respects_limits_and_budget() -> None:
    retriever = HybridRetriever(EmbeddingService(_provider(api_key="")), build_knowledge_base())

    result = await retriever.retrieve("How to register as a voter?", "en", 3000)

    assert result.method is RetrievalMethod.BM25
    assert 0 < len(result.passages) <= 15
    assert result.total_tokens <= 3000
    assert all(0.0 <= passage.score <= 1.0 for passage in result.passages)
    assert any("regist" in passage.content.lower() for passage in result.passages[:3])
    assert result.passages[0].score == 1.0


@pytest.mark.asyncio
async def test_small_budget_truncates_selection() -> None:
    retriever = HybridRetriever(EmbeddingService(_provider(api_key="")), build_knowledge_base())

    result = await retriever.retrieve("polling booth", "en", 60)

    assert result.total_tokens <= 60


@pytest.mark.asyncio
async def test_hybrid_scoring_after_warmup() -> None:
    calls: list[list[str]] = []
    retriever = HybridRetriever(
        EmbeddingService(_provider(_embedding_handler(calls))), build_knowledge_base()
    )

    task = retriever.start_warmup()
    assert task is not None
    assert retriever.start_warmup() is task
    await task

    result = await retriever.retrieve("register", "en", 3000)

    assert retriever.vectors_ready
    assert result.method is RetrievalMethod.HYBRID
    assert all(passage.method is RetrievalMethod.HYBRID for passage in result.passages)
    assert all(0.0 <= passage.score <= 1.0 for passage in result.passages)


def test_warmup_is_skipped_without_credential() -> None:
    retriever = HybridRetriever(EmbeddingService(_provider(api_key="")), build_knowledge_base())

    assert retriever.start_warmup() is None
    assert retriever.vectors_ready is False


@pytest.mark.asyncio
async def test_reranker_degrades_to_retrieval_order_on_503() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(503, text="unavailable")

    provider = _provider(handler)
    retriever = HybridRetriever(EmbeddingService(_provider(api_key="")), build_knowledge_base())
    passages = (await retriever.retrieve("polling booth", "en", 3000)).passages

    results = await CrossEncoderReranker(provider).rerank("polling booth", passages, 3)

    assert attempts == 4
    assert [r.passage.id for r in results] == [p.id for p in passages[:3]]
    assert all(r.reranker_score == r.passage.score for r in results)


@pytest.mark.asyncio
async def test_reranker_sorts_clamps_and_caches() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 0, "relevance_score": 0.2},
                    {"index": 2, "relevance_score": 1.7},
                    {"index": 9, "relevance_score": 0.9},
                ]
            },
        )

    passages = list(build_knowledge_base()[:3])
    reranker = CrossEncoderReranker(_provider(handler))

    results = await reranker.rerank("Form 6", passages, 3)
    again = await reranker.rerank("form 6 ", passages, 3)

    assert [r.passage.id for r in results] == [passages[2].id, passages[0].id]
    assert results[0].reranker_score == 1.0
    assert results[0].original_rank == 2
    assert [r.passage.id for r in again] == [r.passage.id for r in results]
    assert calls == 1


@pytest.mark.asyncio
async def test_reranker_cache_is_keyed_by_top_k() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        documents = json.loads(request.content)["documents"]
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": i, "relevance_score": 0.9 - i * 0.1}
                    for i in range(len(documents))
                ]
            },
        )

    passages = list(build_knowledge_base()[:4])
    reranker = CrossEncoderReranker(_provider(handler))

    single = await reranker.rerank("Form 6", passages, 1)
    wider = await reranker.rerank("Form 6", passages, 3)

    assert [r.passage.id for r in single] == [passages[0].id]
    assert [r.passage.id for r in wider] == [p.id for p in passages[:3]]
    assert calls == 2
