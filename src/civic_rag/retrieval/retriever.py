"""Hybrid lexical and semantic retriever over the in-memory knowledge base."""

from __future__ import annotations

import asyncio
import logging
import math
import string
from dataclasses import replace

from civic_rag.config import RetrievalConfig
from civic_rag.obs.tracing import Timer
from civic_rag.provider.errors import PROVIDER_FAILURES
from civic_rag.retrieval.embeddings import EmbeddingService, cosine_similarity
from civic_rag.types import Locale, Passage, RetrievalMethod, RetrievalResult

logger = logging.getLogger(__name__)

_MIN_BM25_NORMALIZER = 0.001


class HybridRetriever:
    """Scores every passage with BM25 and, once warmed up, cosine similarity.

    Passage embeddings are computed by a background warm-up task. Until that
    task has produced a vector for every passage, requests are served with
    lexical scores only.
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        passages: tuple[Passage, ...] | list[Passage],
        config: RetrievalConfig | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.passages = tuple(passages)
        self.config = config or RetrievalConfig()
        self._doc_tokens = [passage.content.lower().split() for passage in self.passages]
        self._passage_vectors: list[list[float] | None] | None = None
        self._warmup_task: asyncio.Task[None] | None = None

    @property
    def vectors_ready(self) -> bool:
        vectors = self._passage_vectors
        return vectors is not None and all(vector is not None for vector in vectors)

    def start_warmup(self) -> asyncio.Task[None] | None:
        """Schedule passage embedding once; later calls return the same task."""
        if self._warmup_task is None and self.embeddings.available and self.passages:
            self._warmup_task = asyncio.create_task(self._warmup())
        return self._warmup_task

    async def stop_warmup(self) -> None:
        task = self._warmup_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _warmup(self) -> None:
        with Timer() as timer:
            vectors = await self.embeddings.embed_documents(
                [passage.content for passage in self.passages]
            )
        self._passage_vectors = vectors
        embedded = sum(1 for vector in vectors if vector is not None)
        logger.info(
            "retriever_warmup_complete embedded=%d total=%d latency_ms=%.1f",
            embedded,
            len(vectors),
            timer.elapsed_ms,
        )

    async def _await_warmup(self) -> None:
        task = self.start_warmup()
        if task is None or task.done():
            return
        # asyncio.wait leaves the task running when the wait times out.
        await asyncio.wait({task}, timeout=self.config.warmup_wait_seconds)

    async def retrieve(self, query: str, locale: Locale, max_tokens: int) -> RetrievalResult:
        with Timer() as total_timer:
            await self._await_warmup()

            query_vector: list[float] | None = None
            embed_ms = 0.0
            if self.vectors_ready and self.embeddings.available:
                with Timer() as embed_timer:
                    try:
                        query_vector = await self.embeddings.embed_query(query)
                    except PROVIDER_FAILURES as exc:
                        logger.warning("query_embedding_failed error=%s", exc)
                        query_vector = None
                embed_ms = embed_timer.elapsed_ms

            scored = self._score(query, query_vector)
            selected, total_tokens = self._select(scored, max_tokens)

        method = RetrievalMethod.HYBRID if query_vector is not None else RetrievalMethod.BM25
        logger.debug(
            "retrieval_complete locale=%s method=%s selected=%d tokens=%d",
            locale,
            method.value,
            len(selected),
            total_tokens,
        )
        return RetrievalResult(
            passages=selected,
            total_tokens=total_tokens,
            query_embedding_latency_ms=embed_ms,
            retrieval_latency_ms=total_timer.elapsed_ms,
            method=method,
        )

    def bm25_scores(self, query: str) -> list[float]:
        terms = tokenize_query(query)
        total_docs = len(self._doc_tokens)
        k1 = self.config.k1
        b = self.config.b
        scores = [0.0] * total_docs
        for term in terms:
            matches = [sum(1 for token in tokens if term in token) for tokens in self._doc_tokens]
            df = sum(1 for tf in matches if tf > 0)
            if df == 0:
                continue
            idf = math.log(1 + (total_docs - df + 0.5) / (df + 0.5))
            for index, tf in enumerate(matches):
                if tf == 0:
                    continue
                length_ratio = len(self._doc_tokens[index]) / self.config.avg_doc_length
                scores[index] += idf * (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * length_ratio))
        return scores

    def _score(self, query: str, query_vector: list[float] | None) -> list[Passage]:
        raw_bm25 = self.bm25_scores(query)
        normalizer = max(max(raw_bm25, default=0.0), _MIN_BM25_NORMALIZER)
        vectors = self._passage_vectors if query_vector is not None else None

        scored: list[Passage] = []
        for index, passage in enumerate(self.passages):
            lexical = raw_bm25[index] / normalizer
            if vectors is not None and query_vector is not None:
                vector = vectors[index]
                semantic = cosine_similarity(query_vector, vector) if vector is not None else 0.0
                semantic = min(1.0, max(0.0, semantic))
                score = self.config.vector_weight * semantic + self.config.lexical_weight * lexical
                method = RetrievalMethod.HYBRID
            else:
                score = lexical
                method = RetrievalMethod.BM25
            scored.append(
                replace(passage, score=round(min(1.0, max(0.0, score)), 3), method=method)
            )

        # sorted() is stable, so equal scores keep collection order.
        return sorted(scored, key=lambda passage: passage.score, reverse=True)

    def _select(self, scored: list[Passage], max_tokens: int) -> tuple[list[Passage], int]:
        selected: list[Passage] = []
        total_tokens = 0
        for passage in scored[: self.config.candidate_limit]:
            tokens = math.ceil(len(passage.content.split()) * self.config.tokens_per_word)
            if total_tokens + tokens > max_tokens:
                break
            selected.append(passage)
            total_tokens += tokens
        return selected, total_tokens


def tokenize_query(query: str) -> list[str]:
    stripped = (token.strip(string.punctuation) for token in query.lower().split())
    return [token for token in stripped if token]
