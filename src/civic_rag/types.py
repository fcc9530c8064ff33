"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

Locale = Literal["en", "ml"]


class RetrievalMethod(str, Enum):
    VECTOR = "vector"
    BM25 = "bm25"
    HYBRID = "hybrid"


class QueryCategory(str, Enum):
    BOOTH_QUERY = "booth_query"
    ROLL_LOOKUP = "roll_lookup"
    FORM_GUIDANCE = "form_guidance"
    VOTING_RULES = "voting_rules"
    COMPLAINT = "complaint"
    TIMELINE = "timeline"
    GENERAL_FAQ = "general_faq"
    OUT_OF_SCOPE = "out_of_scope"


class EngineKind(str, Enum):
    """Deterministic responders a classified query can be routed to."""

    VOTING_RULES = "voting-rules"
    CIVIC_PROCESS = "civic-process"
    COMPLAINT = "complaint"
    TIMELINE = "timeline"
    CIVIC_BOUNDARY = "civic-boundary"
    BOOTH_LOCATOR = "booth-locator"


class InputModality(str, Enum):
    TEXT = "text"
    AUDIO = "audio"
    IMAGE = "image"
    IMAGE_WITH_TEXT = "image_with_text"


class RouteType(str, Enum):
    RAG = "rag"
    VOICE_THEN_RAG = "voice_then_rag"
    VISION = "vision"
    STRUCTURED_LOOKUP = "structured_lookup"
    MULTIMODAL = "multimodal"
    ENGINE_DIRECT = "engine_direct"


class LookupType(str, Enum):
    BOOTH_SEARCH = "booth_search"
    REGISTRATION_CHECK = "registration_check"
    VIOLATION_REPORT = "violation_report"


@dataclass(frozen=True, slots=True)
class PassageMetadata:
    """Source attribution carried by every passage."""

    source: str
    url: str
    last_updated: str
    section: str | None = None
    page: int | None = None


@dataclass(frozen=True, slots=True)
class Passage:
    """A retrievable unit of grounding text."""

    id: str
    content: str
    metadata: PassageMetadata
    score: float = 0.0
    method: RetrievalMethod = RetrievalMethod.BM25


@dataclass(frozen=True, slots=True)
class BoothRecord:
    """One polling station in the constituency booth directory."""

    id: str
    station_number: int
    title: str
    content: str
    content_ml: str
    source: str
    source_url: str
    tags: tuple[str, ...]
    lat: float
    lng: float
    landmark: str
    area_ml: str = ""


@dataclass(slots=True)
class RetrievalResult:
    passages: list[Passage]
    total_tokens: int
    query_embedding_latency_ms: float
    retrieval_latency_ms: float
    method: RetrievalMethod


@dataclass(slots=True)
class RerankResult:
    passage: Passage
    reranker_score: float
    original_rank: int


@dataclass(slots=True)
class ChatCompletion:
    """Normalized chat completion returned by the provider."""

    text: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str
    finish_reason: str


@dataclass(slots=True)
class Transcription:
    text: str
    language: str
    duration: float
    model: str


@dataclass(slots=True)
class GenerationResult:
    text: str
    confidence: float
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str
    finish_reason: str = "stop"
    used_fallback: bool = False


@dataclass(slots=True)
class ClassificationResult:
    category: QueryCategory
    confidence: float
    sub_intent: str | None = None
    extracted_params: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class SafetyResult:
    flagged: bool
    safe: bool
    safe_text: str
    redacted_pii: bool
    reason: str | None = None
    rule: str | None = None


@dataclass(slots=True)
class Source:
    title: str
    url: str
    last_updated: str
    excerpt: str


@dataclass(slots=True)
class RetrievalTraceEntry:
    doc_id: str
    similarity_score: float
    reranker_score: float


@dataclass(slots=True)
class ActionItem:
    """Suggested follow-up the client can render as a button."""

    id: str
    label: str
    label_ml: str
    icon: str
    action: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RAGTrace:
    retrieval_latency_ms: float = 0.0
    rerank_latency_ms: float = 0.0
    generation_latency_ms: float = 0.0
    total_latency_ms: float = 0.0
    retrieved_count: int = 0
    reranked_count: int = 0
    context_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    prompt_version: str = ""


@dataclass(slots=True)
class RAGOutput:
    text: str
    confidence: float
    escalate: bool
    locale: Locale
    sources: list[Source] = field(default_factory=list)
    actionable: list[ActionItem] = field(default_factory=list)
    retrieval_score: float = 0.0
    reranker_scores: list[float] = field(default_factory=list)
    retrieval_trace: list[RetrievalTraceEntry] = field(default_factory=list)
    generator_model: str = ""
    prompt_version_hash: str = ""
    trace: RAGTrace = field(default_factory=RAGTrace)
    safety: SafetyResult | None = None


@dataclass(slots=True)
class VoiceResult:
    transcript: str
    raw_transcript: str
    locale: Locale
    provider_language: str
    duration_seconds: float
    latency_ms: float
    model: str
    audit_transcript: str
    fillers_removed: bool
    tts_ready: str


@dataclass(slots=True)
class ExtractedField:
    name: str
    value: str
    confidence: float


@dataclass(slots=True)
class FieldValidationError:
    field: str
    error: str


@dataclass(slots=True)
class VisionExtractionResult:
    detected_document_type: str
    extracted_fields: list[ExtractedField]
    confidence: float
    missing_fields: list[str]
    validation_errors: list[FieldValidationError]
    explanation: str
    latency_ms: float
    model: str


@dataclass(slots=True)
class StructuredLookupResult:
    type: LookupType
    suggested_endpoint: str
    extracted_params: dict[str, str]
    message: str
    booth_results: list[BoothRecord] | None = None


@dataclass(slots=True)
class EngineResponse:
    """What a deterministic engine hands back: formatted text plus confidence."""

    formatted_response: str
    confidence: float


@dataclass(slots=True)
class EngineDirectResult:
    engine: EngineKind
    classification: ClassificationResult
    formatted_response: str
    confidence: float
    safety: SafetyResult | None = None
    escalate: bool = False


@dataclass(slots=True)
class RouterResult:
    type: RouteType
    modality: InputModality
    resolved_query: str
    resolved_locale: Locale
    total_latency_ms: float = 0.0
    escalate: bool = False
    rag_result: RAGOutput | None = None
    voice_result: VoiceResult | None = None
    vision_result: VisionExtractionResult | None = None
    lookup_result: StructuredLookupResult | None = None
    engine_result: EngineDirectResult | None = None
