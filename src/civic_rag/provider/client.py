"""HTTP client for the hosted inference provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from civic_rag.config import ProviderConfig
from civic_rag.provider.errors import (
    MalformedResponseError,
    ProviderHTTPError,
    ProviderNotConfiguredError,
)
from civic_rag.provider.resilience import ResilienceClient
from civic_rag.types import ChatCompletion, Transcription

logger = logging.getLogger(__name__)


class InferenceProvider:
    """Chat, embedding, rerank and transcription calls over one httpx client.

    Every request is issued through ``ResilienceClient.call`` keyed by
    ``"<capability>:<model>"``; nothing else in the package opens a socket.
    """

    def __init__(
        self,
        config: ProviderConfig,
        resilience: ResilienceClient,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.resilience = resilience
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)

    @property
    def configured(self) -> bool:
        return self.config.configured

    async def chat_completion(
        self,
        messages: list[dict[str, Any]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.3,
        top_p: float = 0.9,
    ) -> ChatCompletion:
        model_id = model or self.config.generator_model
        payload = {
            "model": model_id,
            "messages": messages,
            "max_tokens": max_tokens or self.config.max_generation_tokens,
            "temperature": temperature,
            "top_p": top_p,
            "stream": False,
        }
        data = await self._call("chat", model_id, self.config.chat_url, json=payload)
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise MalformedResponseError("chat response has no choices")
        choice = choices[0] or {}
        message = choice.get("message") or {}
        usage = data.get("usage") or {}
        return ChatCompletion(
            text=str(message.get("content") or ""),
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
            total_tokens=int(usage.get("total_tokens") or 0),
            model=model_id,
            finish_reason=str(choice.get("finish_reason") or "unknown"),
        )

    async def create_embeddings(
        self, texts: list[str], *, model: str | None = None
    ) -> list[list[float]]:
        model_id = model or self.config.embedding_model
        data = await self._call(
            "embeddings",
            model_id,
            self.config.embedding_url,
            json={"model": model_id, "input": texts},
        )
        rows = data.get("data")
        if not isinstance(rows, list) or len(rows) != len(texts):
            raise MalformedResponseError(
                f"expected {len(texts)} embeddings, got {len(rows) if isinstance(rows, list) else 0}"
            )
        if all(isinstance(row, dict) and "index" in row for row in rows):
            rows = sorted(rows, key=lambda row: int(row["index"]))
        vectors: list[list[float]] = []
        for row in rows:
            embedding = row.get("embedding") if isinstance(row, dict) else None
            if not isinstance(embedding, list) or not embedding:
                raise MalformedResponseError("embedding row is missing its vector")
            vectors.append([float(value) for value in embedding])
        return vectors

    async def rerank(
        self, query: str, documents: list[str], *, top_n: int
    ) -> list[tuple[int, float]]:
        model_id = self.config.reranker_model
        data = await self._call(
            "rerank",
            model_id,
            self.config.reranker_url,
            json={"model": model_id, "query": query, "documents": documents, "top_n": top_n},
        )
        rows = data.get("data") or data.get("results") or []
        scored: list[tuple[int, float]] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                scored.append((int(row["index"]), float(row["relevance_score"])))
            except (KeyError, TypeError, ValueError):
                logger.warning("rerank_row_skipped keys=%s", sorted(row))
        return scored

    async def transcribe(
        self,
        audio: bytes,
        *,
        filename: str = "audio.webm",
        content_type: str | None = None,
    ) -> Transcription:
        model_id = self.config.asr_model
        data = await self._call(
            "transcribe",
            model_id,
            self.config.transcription_url,
            files={"file": (filename, audio, content_type or "application/octet-stream")},
            data={"model": model_id, "response_format": "verbose_json"},
        )
        return Transcription(
            text=str(data.get("text") or "").strip(),
            language=str(data.get("language") or "unknown"),
            duration=float(data.get("duration") or 0.0),
            model=model_id,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _call(self, capability: str, model: str, url: str, **request: Any) -> dict[str, Any]:
        if not self.configured:
            raise ProviderNotConfiguredError("FIREWORKS_API_KEY is not configured")
        return await self.resilience.call(
            f"{capability}:{model}", lambda: self._post(url, **request)
        )

    async def _post(self, url: str, **request: Any) -> dict[str, Any]:
        response = await self._client.post(
            url,
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            **request,
        )
        if response.status_code >= 400:
            raise ProviderHTTPError(response.status_code, response.text)
        try:
            body = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"non-JSON response from {url}") from exc
        if not isinstance(body, dict):
            raise MalformedResponseError(f"unexpected payload type from {url}")
        return body
