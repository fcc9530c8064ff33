"""Retrieve, rerank, generate, score and screen one civic question."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from copy import deepcopy

from civic_rag.config import PipelineConfig
from civic_rag.generation.generator import Generator, template_fallback
from civic_rag.generation.prompts import PROMPT_VERSION, compute_prompt_hash, render_rag_prompt
from civic_rag.obs.tracing import (
    EscalationSink,
    EscalationStore,
    Timer,
    estimate_tokens,
    new_escalation_record,
    trim_to_token_budget,
)
from civic_rag.pipeline.actions import extract_actions
from civic_rag.pipeline.confidence import ConfidenceScorer, parse_self_score
from civic_rag.provider.resilience import TTLCache
from civic_rag.retrieval.reranker import Reranker
from civic_rag.retrieval.retriever import HybridRetriever
from civic_rag.schemas import ChatMessage, RAGInput
from civic_rag.types import (
    Locale,
    Passage,
    RAGOutput,
    RAGTrace,
    RetrievalTraceEntry,
    SafetyResult,
    Source,
)
from civic_rag.understanding.safety import SafetyFilter, redact_pii

logger = logging.getLogger(__name__)

SCREENED_CONFIDENCE = 0.99

MemoryLookup = Callable[[str], str]


class RagOrchestrator:
    """Runs the grounded-answer pipeline and never raises to its caller.

    Pipeline stages:
    1. Answer cache lookup for stateless requests.
    2. Query safety screen, which short-circuits before any provider spend.
    3. Hybrid retrieval and cross-encoder reranking.
    4. Prompt assembly, generation and self-score parsing.
    5. Confidence blending, final safety check and escalation.
    """

    def __init__(
        self,
        *,
        retriever: HybridRetriever,
        reranker: Reranker,
        generator: Generator,
        answer_cache: TTLCache[RAGOutput],
        safety: SafetyFilter | None = None,
        scorer: ConfidenceScorer | None = None,
        escalations: EscalationSink | None = None,
        memory: MemoryLookup | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.retriever = retriever
        self.reranker = reranker
        self.generator = generator
        self.answer_cache = answer_cache
        self.safety = safety or SafetyFilter()
        self.scorer = scorer or ConfidenceScorer(self.config)
        self.escalations = escalations if escalations is not None else EscalationStore()
        self.memory = memory

    async def rag_orchestrate(
        self, request: RAGInput, *, session_id: str | None = None
    ) -> RAGOutput:
        with Timer() as timer:
            try:
                output = await self._run(request)
            except Exception:
                logger.exception("rag_orchestrate_failed query_len=%d", len(request.query))
                output = self._failure_output(request)

        output.trace.total_latency_ms = timer.elapsed_ms
        if output.escalate:
            self.record_escalation(
                query=request.query,
                answer=output.text,
                confidence=output.confidence,
                locale=output.locale,
                session_id=session_id or request.user_id,
                latency_ms=output.trace.total_latency_ms,
                safety=output.safety,
            )
        return output

    async def _run(self, request: RAGInput) -> RAGOutput:
        query = request.query.strip()
        locale = request.locale
        cfg = self.config

        cache_key: str | None = None
        if not request.conversation_history and request.user_id is None:
            cache_key = f"{locale}:{' '.join(query.lower().split())}"
            cached = self.answer_cache.get(cache_key)
            if cached is not None:
                logger.info("answer_cache_hit locale=%s", locale)
                return deepcopy(cached)

        screen = self.safety.screen_query(query, locale)
        if screen.flagged:
            return self._screened_output(query, locale, screen)

        retrieval = await self.retriever.retrieve(query, locale, cfg.retrieval_token_budget)

        with Timer() as rerank_timer:
            reranked = await self.reranker.rerank(query, retrieval.passages, cfg.rerank_top_k)
        top_passages = [result.passage for result in reranked]
        reranker_scores = [result.reranker_score for result in reranked]
        retrieval_trace = [
            RetrievalTraceEntry(
                doc_id=result.passage.id,
                similarity_score=result.passage.score,
                reranker_score=result.reranker_score,
            )
            for result in reranked
        ]

        context_block = build_context_block(top_passages)
        system_prompt, user_prompt = render_rag_prompt(
            query=query,
            locale=locale,
            context_block=context_block,
            conversation_block=build_conversation_block(
                request.conversation_history, cfg.history_messages
            ),
            memory_block=self._memory_block(request.user_id),
            retrieval_trace=retrieval_trace,
        )
        user_prompt = trim_to_token_budget(user_prompt, cfg.prompt_token_budget)

        with Timer() as generation_timer:
            generated = await self.generator.generate(
                system_prompt, user_prompt, locale, query=query
            )

        clean_text, self_score = parse_self_score(generated.text)
        similarity_scores = [passage.score for passage in top_passages]
        confidence = self.scorer.score(
            similarity_scores=similarity_scores,
            reranker_scores=reranker_scores,
            self_score=generated.confidence if self_score is None else self_score,
            text=clean_text,
            completion_tokens=generated.completion_tokens,
        )

        safety = self.safety.check(clean_text, query, locale)
        escalate = self.scorer.should_escalate(confidence, safety.flagged)

        output = RAGOutput(
            text=safety.safe_text,
            confidence=confidence,
            escalate=escalate,
            locale=locale,
            sources=build_sources(top_passages, cfg.max_sources, cfg.excerpt_chars),
            actionable=extract_actions(query, safety.safe_text, locale),
            retrieval_score=round(max(similarity_scores, default=0.0), 2),
            reranker_scores=reranker_scores,
            retrieval_trace=retrieval_trace,
            generator_model=generated.model,
            prompt_version_hash=compute_prompt_hash(system_prompt + user_prompt),
            trace=RAGTrace(
                retrieval_latency_ms=retrieval.retrieval_latency_ms,
                rerank_latency_ms=rerank_timer.elapsed_ms,
                generation_latency_ms=generation_timer.elapsed_ms,
                retrieved_count=len(retrieval.passages),
                reranked_count=len(reranked),
                context_tokens=estimate_tokens(context_block),
                prompt_tokens=generated.prompt_tokens or estimate_tokens(user_prompt),
                completion_tokens=generated.completion_tokens or estimate_tokens(clean_text),
                prompt_version=PROMPT_VERSION,
            ),
            safety=safety,
        )

        logger.info(
            "rag_complete locale=%s confidence=%.2f escalate=%s fallback=%s retrieved=%d",
            locale,
            confidence,
            escalate,
            generated.used_fallback,
            len(retrieval.passages),
        )
        if cache_key is not None and not escalate and not generated.used_fallback:
            self.answer_cache.set(cache_key, deepcopy(output))
        return output

    def _screened_output(self, query: str, locale: Locale, screen: SafetyResult) -> RAGOutput:
        return RAGOutput(
            text=screen.safe_text,
            confidence=SCREENED_CONFIDENCE,
            escalate=True,
            locale=locale,
            actionable=extract_actions(query, "", locale),
            trace=RAGTrace(prompt_version=PROMPT_VERSION),
            safety=screen,
        )

    def _failure_output(self, request: RAGInput) -> RAGOutput:
        fallback = template_fallback("", request.locale)
        return RAGOutput(
            text=fallback.text,
            confidence=0.0,
            escalate=True,
            locale=request.locale,
            generator_model=fallback.model,
            trace=RAGTrace(prompt_version=PROMPT_VERSION),
        )

    def _memory_block(self, user_id: str | None) -> str:
        if user_id is None or self.memory is None:
            return ""
        try:
            remembered = self.memory(user_id).strip()
        except Exception as exc:
            logger.warning("memory_lookup_failed error=%s", exc)
            return ""
        return f"\nUSER CONTEXT (opt-in memory):\n{remembered}\n" if remembered else ""

    def record_escalation(
        self,
        *,
        query: str,
        answer: str,
        confidence: float,
        locale: Locale,
        session_id: str | None,
        latency_ms: float,
        safety: SafetyResult | None = None,
        reason: str | None = None,
    ) -> None:
        """Queue an answer for human review, with PII redacted from both sides."""
        if reason is None:
            if safety is not None and safety.flagged:
                reason = f"safety:{safety.rule}"
            else:
                reason = "low_confidence"
        record = new_escalation_record(
            session_id=session_id,
            query=redact_pii(query)[0],
            answer=redact_pii(answer)[0],
            confidence=confidence,
            reason=reason,
            locale=locale,
            latency_ms=latency_ms,
        )
        self.escalations.record(record)
        logger.info(
            "escalation_recorded id=%s reason=%s session=%s",
            record.escalation_id,
            reason,
            record.session_hash,
        )


def build_context_block(passages: Sequence[Passage]) -> str:
    return "\n\n".join(
        f"[Source {index}: {passage.metadata.source}]\n{passage.content}\n"
        f"(URL: {passage.metadata.url}, Updated: {passage.metadata.last_updated})"
        for index, passage in enumerate(passages, start=1)
    )


def build_conversation_block(history: Sequence[ChatMessage], limit: int) -> str:
    if limit <= 0:
        return ""
    return "\n".join(
        f"{'User' if message.role == 'user' else 'Assistant'}: {message.content}"
        for message in history[-limit:]
    )


def build_sources(passages: Sequence[Passage], limit: int, excerpt_chars: int) -> list[Source]:
    return [
        Source(
            title=passage.metadata.source,
            url=passage.metadata.url,
            last_updated=passage.metadata.last_updated,
            excerpt=passage.content[:excerpt_chars] + "...",
        )
        for passage in passages[:limit]
    ]
