"""Cross-encoder reranking with a retrieval-order fallback."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.errors import PROVIDER_FAILURES
from civic_rag.types import Passage, RerankResult

logger = logging.getLogger(__name__)


class Reranker(ABC):
    """Reranker interface applied to retrieved candidates."""

    @abstractmethod
    async def rerank(self, query: str, passages: list[Passage], top_k: int) -> list[RerankResult]:
        """Return at most ``top_k`` passages in final ranking order."""


class RetrievalOrderReranker(Reranker):
    """Keeps retrieval order and reuses the retrieval score."""

    async def rerank(self, query: str, passages: list[Passage], top_k: int) -> list[RerankResult]:
        return [
            RerankResult(passage=passage, reranker_score=passage.score, original_rank=index)
            for index, passage in enumerate(passages[:top_k])
        ]


class CrossEncoderReranker(Reranker):
    """Scores query/passage pairs with the hosted reranker model.

    Any provider failure, including an open circuit or a missing credential,
    degrades to retrieval order instead of raising.
    """

    def __init__(self, provider: InferenceProvider) -> None:
        self.provider = provider
        self._cache = provider.resilience.rerank_cache
        self._fallback = RetrievalOrderReranker()

    async def rerank(self, query: str, passages: list[Passage], top_k: int) -> list[RerankResult]:
        if not passages:
            return []

        key = _cache_key(query, passages, top_k)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        if not self.provider.configured:
            return await self._degrade(query, passages, top_k, "not_configured")

        try:
            rows = await self.provider.rerank(
                query, [passage.content for passage in passages], top_n=top_k
            )
        except PROVIDER_FAILURES as exc:
            return await self._degrade(query, passages, top_k, type(exc).__name__)

        results = [
            RerankResult(
                passage=passages[index],
                reranker_score=min(1.0, max(0.0, score)),
                original_rank=index,
            )
            for index, score in rows
            if 0 <= index < len(passages)
        ]
        if not results:
            return await self._degrade(query, passages, top_k, "empty_result")

        results.sort(key=lambda result: result.reranker_score, reverse=True)
        results = results[:top_k]
        self._cache.set(key, tuple(results))
        return results

    async def _degrade(
        self, query: str, passages: list[Passage], top_k: int, reason: str
    ) -> list[RerankResult]:
        logger.warning("reranker_degraded reason=%s candidates=%d", reason, len(passages))
        return await self._fallback.rerank(query, passages, top_k)


def _cache_key(query: str, passages: list[Passage], top_k: int) -> str:
    ids = "|".join(sorted(passage.id for passage in passages))
    return f"{query.strip().lower()}|{top_k}|{ids}"
