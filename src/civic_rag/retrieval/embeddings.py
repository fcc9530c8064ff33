"""Dense embedding service backed by the inference provider."""

from __future__ import annotations

import asyncio
import logging
from math import sqrt

from civic_rag.provider.client import InferenceProvider

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Embeds queries with a TTL cache and documents in fixed-size batches."""

    def __init__(self, provider: InferenceProvider, *, batch_size: int = 64) -> None:
        self.provider = provider
        self.batch_size = batch_size
        self._cache = provider.resilience.embedding_cache

    @property
    def available(self) -> bool:
        return self.provider.configured

    async def embed_query(self, text: str) -> list[float]:
        key = text.strip().lower()
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        vectors = await self.provider.create_embeddings([text])
        self._cache.set(key, vectors[0])
        return vectors[0]

    async def embed_documents(self, texts: list[str]) -> list[list[float] | None]:
        """Embed ``texts`` in batches; a failed batch leaves ``None`` in its slots."""
        batches = [
            texts[start : start + self.batch_size]
            for start in range(0, len(texts), self.batch_size)
        ]
        outcomes = await asyncio.gather(
            *(self.provider.create_embeddings(batch) for batch in batches),
            return_exceptions=True,
        )

        vectors: list[list[float] | None] = []
        for index, (batch, outcome) in enumerate(zip(batches, outcomes, strict=True)):
            if isinstance(outcome, Exception):
                logger.warning(
                    "embedding_batch_failed batch=%d size=%d error=%s",
                    index,
                    len(batch),
                    outcome,
                )
                vectors.extend([None] * len(batch))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                vectors.extend(outcome)
        return vectors


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)
