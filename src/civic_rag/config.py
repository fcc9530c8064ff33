"""Configuration models for the civic RAG pipeline."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field

_FIREWORKS_INFERENCE = "https://api.fireworks.ai/inference/v1"


class ProviderConfig(BaseModel):
    """Endpoints, models and token budgets for the hosted inference provider."""

    api_key: str = ""
    chat_url: str = f"{_FIREWORKS_INFERENCE}/chat/completions"
    reranker_url: str = f"{_FIREWORKS_INFERENCE}/rerank"
    embedding_url: str = f"{_FIREWORKS_INFERENCE}/embeddings"
    transcription_url: str = "https://audio-prod.api.fireworks.ai/v1/audio/transcriptions"

    generator_model: str = "accounts/fireworks/models/qwen3-vl-30b-a3b-thinking"
    reranker_model: str = "accounts/fireworks/models/qwen3-reranker-8b"
    embedding_model: str = "accounts/fireworks/models/qwen3-embedding-8b"
    asr_model: str = "accounts/fireworks/models/whisper-v3"

    max_context_tokens: int = Field(default=6000, ge=256)
    max_generation_tokens: int = Field(default=1800, ge=16)
    cache_ttl_seconds: int = Field(default=86400, ge=1)
    timeout_seconds: float = Field(default=12.0, gt=0.0)

    @property
    def configured(self) -> bool:
        return bool(self.api_key.strip())

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ProviderConfig":
        env = os.environ if environ is None else environ
        defaults = cls()

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            return int(raw) if raw else default

        return cls(
            api_key=env.get("FIREWORKS_API_KEY", ""),
            chat_url=env.get("CHAT_URL") or defaults.chat_url,
            reranker_url=env.get("RERANKER_URL") or defaults.reranker_url,
            embedding_url=env.get("EMBEDDING_URL") or defaults.embedding_url,
            transcription_url=env.get("AUDIO_TRANSCRIBE_URL") or defaults.transcription_url,
            generator_model=env.get("GENERATOR_MODEL") or defaults.generator_model,
            reranker_model=env.get("RERANKER_MODEL") or defaults.reranker_model,
            embedding_model=env.get("EMBEDDING_MODEL") or defaults.embedding_model,
            asr_model=env.get("ASR_MODEL") or defaults.asr_model,
            max_context_tokens=_int("MAX_CONTEXT_TOKENS", defaults.max_context_tokens),
            max_generation_tokens=_int("MAX_GENERATION_TOKENS", defaults.max_generation_tokens),
            cache_ttl_seconds=_int("CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
        )


class ResilienceConfig(BaseModel):
    """Configures timeouts, retry backoff, circuit breaking and cache lifetimes."""

    timeout_seconds: float = Field(default=12.0, gt=0.0)
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    failure_threshold: int = Field(default=5, ge=1)
    reset_seconds: float = Field(default=60.0, gt=0.0)
    embedding_ttl_seconds: float = Field(default=86400.0, gt=0.0)
    rerank_ttl_seconds: float = Field(default=3600.0, gt=0.0)
    answer_ttl_seconds: float = Field(default=86400.0, gt=0.0)


class RetrievalConfig(BaseModel):
    """Configures BM25, score fusion and candidate selection."""

    k1: float = Field(default=1.5, gt=0.0)
    b: float = Field(default=0.75, ge=0.0, le=1.0)
    avg_doc_length: float = Field(default=200.0, gt=0.0)
    vector_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    lexical_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    candidate_limit: int = Field(default=15, ge=1)
    warmup_wait_seconds: float = Field(default=0.1, ge=0.0)
    embedding_batch_size: int = Field(default=64, ge=1)
    tokens_per_word: float = Field(default=1.3, gt=0.0)


class GenerationConfig(BaseModel):
    """Sampling parameters for grounded answer generation."""

    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    top_p: float = Field(default=0.9, gt=0.0, le=1.0)


class PipelineConfig(BaseModel):
    """Configures the retrieve-rerank-generate pipeline and escalation policy."""

    retrieval_token_budget: int = Field(default=3000, ge=1)
    rerank_top_k: int = Field(default=3, ge=1)
    prompt_token_budget: int = Field(default=1500, ge=1)
    history_messages: int = Field(default=6, ge=0)
    max_sources: int = Field(default=3, ge=0)
    excerpt_chars: int = Field(default=150, ge=1)
    escalation_threshold: float = Field(default=0.55, ge=0.0, le=1.0)
    engine_confidence_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
