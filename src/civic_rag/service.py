"""Composition root wiring provider, retrieval, generation and routing together."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

import httpx

from civic_rag.config import (
    GenerationConfig,
    PipelineConfig,
    ProviderConfig,
    ResilienceConfig,
    RetrievalConfig,
)
from civic_rag.generation.generator import Generator
from civic_rag.modality.vision import VisionExtractor
from civic_rag.modality.voice import VoicePipeline
from civic_rag.obs.tracing import EscalationSink, EscalationStore
from civic_rag.pipeline.engines import BoothLocatorEngine, CivicEngines, EngineRouter
from civic_rag.pipeline.orchestrator import MemoryLookup, RagOrchestrator
from civic_rag.pipeline.router import ModalityRouter
from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.resilience import ResilienceClient
from civic_rag.retrieval.embeddings import EmbeddingService
from civic_rag.retrieval.knowledge import BoothDirectory, build_knowledge_base
from civic_rag.retrieval.reranker import CrossEncoderReranker
from civic_rag.retrieval.retriever import HybridRetriever
from civic_rag.schemas import RAGInput, RouterInput
from civic_rag.types import RAGOutput, RouterResult
from civic_rag.understanding.classifier import QueryClassifier
from civic_rag.understanding.safety import SafetyFilter

logger = logging.getLogger(__name__)


class CivicAssistant:
    """Owns the process-wide provider client, caches, knowledge base and review queue."""

    def __init__(
        self,
        *,
        provider_config: ProviderConfig | None = None,
        resilience_config: ResilienceConfig | None = None,
        retrieval_config: RetrievalConfig | None = None,
        generation_config: GenerationConfig | None = None,
        pipeline_config: PipelineConfig | None = None,
        engines: CivicEngines | None = None,
        escalations: EscalationSink | None = None,
        memory: MemoryLookup | None = None,
        directory: BoothDirectory | None = None,
        http_client: httpx.AsyncClient | None = None,
        resilience: ResilienceClient | None = None,
    ) -> None:
        self.provider_config = provider_config or ProviderConfig()
        self.resilience_config = resilience_config or ResilienceConfig(
            timeout_seconds=self.provider_config.timeout_seconds,
            answer_ttl_seconds=float(self.provider_config.cache_ttl_seconds),
        )
        self.retrieval_config = retrieval_config or RetrievalConfig()
        self.pipeline_config = pipeline_config or PipelineConfig()

        self.resilience = resilience or ResilienceClient(self.resilience_config)
        self.provider = InferenceProvider(
            self.provider_config, self.resilience, http_client=http_client
        )
        self.directory = directory or BoothDirectory()
        self.escalations = escalations if escalations is not None else EscalationStore()

        safety = SafetyFilter()
        self.retriever = HybridRetriever(
            EmbeddingService(self.provider, batch_size=self.retrieval_config.embedding_batch_size),
            build_knowledge_base(booths=self.directory.booths),
            self.retrieval_config,
        )
        self.orchestrator = RagOrchestrator(
            retriever=self.retriever,
            reranker=CrossEncoderReranker(self.provider),
            generator=Generator(self.provider, generation_config),
            answer_cache=self.resilience.answer_cache,
            safety=safety,
            escalations=self.escalations,
            memory=memory,
            config=self.pipeline_config,
        )
        self.router = ModalityRouter(
            orchestrator=self.orchestrator,
            engine_router=EngineRouter(
                classifier=QueryClassifier(),
                booth_locator=BoothLocatorEngine(self.directory),
                engines=engines,
                safety=safety,
                config=self.pipeline_config,
            ),
            directory=self.directory,
            voice=VoicePipeline(self.provider),
            vision=VisionExtractor(self.provider),
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **kwargs) -> "CivicAssistant":
        provider_config = ProviderConfig.from_env(environ)
        if not provider_config.configured:
            logger.warning("provider_not_configured fallback=templates")
        return cls(provider_config=provider_config, **kwargs)

    def start(self) -> asyncio.Task[None] | None:
        """Kick off passage embedding in the background; requires a running loop."""
        return self.retriever.start_warmup()

    async def route_input(self, request: RouterInput) -> RouterResult:
        return await self.router.route_input(request)

    async def rag_orchestrate(self, request: RAGInput, *, session_id: str | None = None) -> RAGOutput:
        return await self.orchestrator.rag_orchestrate(request, session_id=session_id)

    async def aclose(self) -> None:
        await self.retriever.stop_warmup()
        await self.provider.aclose()

    async def __aenter__(self) -> "CivicAssistant":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
