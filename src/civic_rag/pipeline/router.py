"""Routes text, audio and image input to engines, lookups, vision or RAG."""

from __future__ import annotations

import logging
import re

from civic_rag.generation.prompts import PROMPT_VERSION
from civic_rag.modality.vision import VisionExtractor, unreadable_result
from civic_rag.modality.voice import VoicePipeline
from civic_rag.obs.tracing import Timer
from civic_rag.pipeline.engines import EngineRouter
from civic_rag.pipeline.lookup import detect_structured_lookup
from civic_rag.pipeline.orchestrator import RagOrchestrator
from civic_rag.provider.errors import PROVIDER_FAILURES, InvalidMediaError
from civic_rag.retrieval.knowledge import BoothDirectory
from civic_rag.schemas import RAGInput, RouterInput
from civic_rag.types import (
    InputModality,
    Locale,
    RAGOutput,
    RAGTrace,
    RouterResult,
    RouteType,
    VisionExtractionResult,
)

logger = logging.getLogger(__name__)

_MALAYALAM = re.compile(r"[ഀ-ൿ]")

# Labels the chat client sends when the user uploads a file without typing.
AUTO_UPLOAD_MESSAGES = frozenset(
    {
        "extract information from this document",
        "analyze this file",
        "ഈ ഡോക്യുമെന്റിൽ നിന്ന് വിവരങ്ങൾ എക്‌സ്ട്രാക്ട് ചെയ്യുക",
        "ഈ ഫയൽ വിശകലനം ചെയ്യുക",
    }
)

VOICE_FALLBACK_MODEL = "voice-fallback"

GREETINGS: dict[str, str] = {
    "en": "How can I help you?",
    "ml": "ഞാൻ എങ്ങനെ സഹായിക്കാം?",
}

_AUDIO_FAILURE: dict[str, str] = {
    "en": (
        "Sorry, I could not understand the audio. Please try recording again or type your "
        "question. 📞 Helpline: 1950"
    ),
    "ml": (
        "ക്ഷമിക്കണം, ഓഡിയോ മനസ്സിലാക്കാൻ കഴിഞ്ഞില്ല. ദയവായി വീണ്ടും റെക്കോർഡ് ചെയ്യുക അല്ലെങ്കിൽ "
        "നിങ്ങളുടെ ചോദ്യം ടൈപ്പ് ചെയ്യുക. 📞 ഹെൽപ്‌ലൈൻ: 1950"
    ),
}


def is_auto_upload_message(text: str | None) -> bool:
    if not text or not text.strip():
        return True
    return text.strip().lower() in AUTO_UPLOAD_MESSAGES


def detect_modality(request: RouterInput) -> InputModality:
    if request.audio_bytes:
        return InputModality.AUDIO
    if request.image_bytes:
        if not is_auto_upload_message(request.text):
            return InputModality.IMAGE_WITH_TEXT
        return InputModality.IMAGE
    return InputModality.TEXT


class ModalityRouter:
    """Single entry point for chat input of any modality.

    Priority is audio, then image with a real question, then image only,
    then text. Text (typed or transcribed) tries a deterministic engine
    first, then a structured lookup, then the RAG pipeline.
    """

    def __init__(
        self,
        *,
        orchestrator: RagOrchestrator,
        engine_router: EngineRouter,
        directory: BoothDirectory,
        voice: VoicePipeline,
        vision: VisionExtractor,
    ) -> None:
        self.orchestrator = orchestrator
        self.engine_router = engine_router
        self.directory = directory
        self.voice = voice
        self.vision = vision

    async def route_input(self, request: RouterInput) -> RouterResult:
        modality = detect_modality(request)
        query = (request.text or "").strip()
        locale: Locale = request.locale
        if query and _MALAYALAM.search(query):
            locale = "ml"

        with Timer() as timer:
            match modality:
                case InputModality.AUDIO:
                    result = await self._route_audio(request, locale)
                case InputModality.IMAGE:
                    vision = await self._extract(request, locale)
                    result = RouterResult(
                        type=RouteType.VISION,
                        modality=modality,
                        resolved_query=f"[Document: {vision.detected_document_type}]",
                        resolved_locale=locale,
                        vision_result=vision,
                    )
                case InputModality.IMAGE_WITH_TEXT:
                    vision = await self._extract(request, locale)
                    result = RouterResult(
                        type=RouteType.MULTIMODAL,
                        modality=modality,
                        resolved_query=query,
                        resolved_locale=locale,
                        vision_result=vision,
                        rag_result=await self._supplementary_rag(request, query, locale),
                    )
                    result.escalate = result.rag_result is not None and result.rag_result.escalate
                case _:
                    result = await self._route_text(
                        request, query or GREETINGS[locale], locale, modality, RouteType.RAG
                    )

        result.total_latency_ms = timer.elapsed_ms
        self._record_direct_escalation(request, result)
        logger.info(
            "router_decision modality=%s type=%s locale=%s query_len=%d engine=%s category=%s "
            "latency_ms=%.1f",
            result.modality.value,
            result.type.value,
            result.resolved_locale,
            len(result.resolved_query),
            result.engine_result.engine.value if result.engine_result else None,
            result.engine_result.classification.category.value if result.engine_result else None,
            result.total_latency_ms,
        )
        return result

    def _record_direct_escalation(self, request: RouterInput, result: RouterResult) -> None:
        """Record escalations the RAG pipeline did not already record itself."""
        if not result.escalate:
            return
        engine = result.engine_result
        if engine is not None:
            self.orchestrator.record_escalation(
                query=result.resolved_query,
                answer=engine.formatted_response,
                confidence=engine.confidence,
                locale=result.resolved_locale,
                session_id=request.session_id,
                latency_ms=result.total_latency_ms,
                safety=engine.safety,
            )
        elif result.type is RouteType.VOICE_THEN_RAG and result.rag_result is not None:
            if result.rag_result.generator_model == VOICE_FALLBACK_MODEL:
                self.orchestrator.record_escalation(
                    query=result.resolved_query,
                    answer=result.rag_result.text,
                    confidence=result.rag_result.confidence,
                    locale=result.resolved_locale,
                    session_id=request.session_id,
                    latency_ms=result.total_latency_ms,
                    reason="voice_failure",
                )

    async def _route_audio(self, request: RouterInput, locale: Locale) -> RouterResult:
        try:
            voice = await self.voice.process(
                request.audio_bytes or b"",
                request.audio_filename,
                request.audio_content_type,
            )
        except (InvalidMediaError, *PROVIDER_FAILURES) as exc:
            logger.warning("voice_failed error=%s", type(exc).__name__)
            return _audio_failure(locale)
        if not voice.transcript:
            logger.warning("voice_failed error=empty_transcript")
            failed = _audio_failure(voice.locale)
            failed.voice_result = voice
            return failed

        result = await self._route_text(
            request,
            voice.transcript,
            voice.locale,
            InputModality.AUDIO,
            RouteType.VOICE_THEN_RAG,
        )
        result.voice_result = voice
        return result

    async def _route_text(
        self,
        request: RouterInput,
        query: str,
        locale: Locale,
        modality: InputModality,
        rag_type: RouteType,
    ) -> RouterResult:
        engine = self.engine_router.try_route(query, locale, request.latitude, request.longitude)
        if engine is not None:
            return RouterResult(
                type=RouteType.ENGINE_DIRECT,
                modality=modality,
                resolved_query=query,
                resolved_locale=locale,
                engine_result=engine,
                escalate=engine.escalate,
            )

        # Flagged queries go to RAG, which answers with the fixed safe response.
        lookup = None
        if not self.engine_router.safety.screen_query(query, locale).flagged:
            lookup = detect_structured_lookup(
                query, self.directory, latitude=request.latitude, longitude=request.longitude
            )
        if lookup is not None:
            return RouterResult(
                type=RouteType.STRUCTURED_LOOKUP,
                modality=modality,
                resolved_query=query,
                resolved_locale=locale,
                lookup_result=lookup,
            )

        rag = await self.orchestrator.rag_orchestrate(
            _rag_input(request, query, locale), session_id=request.session_id
        )
        return RouterResult(
            type=rag_type,
            modality=modality,
            resolved_query=query,
            resolved_locale=locale,
            escalate=rag.escalate,
            rag_result=rag,
        )

    async def _extract(self, request: RouterInput, locale: Locale) -> VisionExtractionResult:
        try:
            return await self.vision.extract(
                request.image_bytes or b"", request.image_mime_type, locale
            )
        except InvalidMediaError as exc:
            logger.warning("vision_rejected error=%s", exc)
            return unreadable_result(locale, self.vision.provider.config.generator_model, str(exc))

    async def _supplementary_rag(
        self, request: RouterInput, query: str, locale: Locale
    ) -> RAGOutput | None:
        try:
            return await self.orchestrator.rag_orchestrate(
                _rag_input(request, query, locale), session_id=request.session_id
            )
        except Exception:
            logger.exception("multimodal_rag_failed")
            return None


def _rag_input(request: RouterInput, query: str, locale: Locale) -> RAGInput:
    return RAGInput(
        query=query,
        locale=locale,
        conversation_history=request.conversation_history,
        user_id=request.user_id,
    )


def _audio_failure(locale: Locale) -> RouterResult:
    return RouterResult(
        type=RouteType.VOICE_THEN_RAG,
        modality=InputModality.AUDIO,
        resolved_query="",
        resolved_locale=locale,
        escalate=True,
        rag_result=RAGOutput(
            text=_AUDIO_FAILURE[locale],
            confidence=0.1,
            escalate=True,
            locale=locale,
            generator_model=VOICE_FALLBACK_MODEL,
            trace=RAGTrace(prompt_version=PROMPT_VERSION),
        ),
    )
