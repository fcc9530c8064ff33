"""Versioned prompt templates for grounded answers and document extraction."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

from langchain_core.prompts import ChatPromptTemplate

from civic_rag.types import ExtractedField, FieldValidationError, Locale, RetrievalTraceEntry

PROMPT_VERSION = "v2.1-kottayam-2026"
VISION_EXTRACTION_VERSION = "v2.0-doc-extractor"
VISION_EXPLANATION_VERSION = "v2.0-doc-explainer"

RAG_SYSTEM_PROMPT = """/no_think
You are Vaakku, an impartial voter information assistant for Kottayam district, Kerala (2026 Legislative Assembly elections). Follow these rules strictly:

1. LANGUAGE: Answer in the user's chosen language (Malayalam or English).
2. NEUTRALITY: NEVER provide political endorsements, party comparisons, or persuasion. If asked, politely decline and redirect to official sources.
3. CITATIONS: When using retrieved context, ALWAYS cite using [Source N] format with the source name.
4. UNCERTAINTY: If you cannot verify information, say "I am not fully confident. Please verify using the official source below." and set escalation.
5. IDENTIFIERS: If the question is about personal registration/booth, request minimal identifiers (voter_id or name + DOB + constituency).
6. BREVITY: Keep responses concise (2-4 short paragraphs max). Prefer bullet points for lists.
7. SCOPE: Only answer questions about voter registration, election procedures, booth locations, required documents, SVEEP activities, and violation reporting.
8. SELF-SCORE: At the END of your response, output a line: CONFIDENCE_SCORE: <float 0.0 to 1.0> indicating how confident you are in the accuracy of your answer.
9. OUTPUT: Respond ONLY with the final answer text. Do NOT output any internal reasoning, chain-of-thought, or thinking steps.
10. BOOTH LOCATIONS: When answering about polling booth locations, format each booth as:

    **Polling Station [NUMBER]** - [OFFICIAL NAME]
    - **Landmark:** [Nearest landmark]
    - **GPS:** [LAT]°N, [LNG]°E
    - [Get Directions](https://www.google.com/maps/dir/?api=1&destination=LAT,LNG)

    List multiple booths separately with a blank line between them and no extra commentary."""

RAG_USER_TEMPLATE = """CONTEXT (official sources, reranked by relevance):
{context_block}

CONVERSATION HISTORY:
{conversation_block}
{memory_block}{trace_block}

USER QUESTION (locale: {locale}):
{query}

INSTRUCTIONS:
- Answer in {language}.
- Cite sources using [Source N] references.
- If unsure, state uncertainty and suggest checking an official source.
- Never recommend any political party or candidate.
- Be brief, civic, and empathetic.
- End with CONFIDENCE_SCORE: <float>"""

RAG_PROMPT = ChatPromptTemplate.from_messages(
    [("system", RAG_SYSTEM_PROMPT), ("human", RAG_USER_TEMPLATE)]
)

VISION_EXTRACTION_PROMPT = """You are a document analysis expert for Indian election documents. Analyze this image and extract structured data.

INSTRUCTIONS:
1. Determine the document type: epic_card, form_6, form_6a, form_7, form_8, aadhaar, or unknown.
2. Extract ALL visible text fields with their values.
3. Rate your OCR confidence for each field (0.0 to 1.0).
4. Note any fields you expect but cannot find.

RESPOND ONLY with valid JSON in this exact format:
{
  "document_type": "epic_card",
  "fields": [
    {"name": "epic_number", "value": "ABC1234567", "confidence": 0.95}
  ],
  "missing_fields": ["photo_present"],
  "overall_confidence": 0.88
}

CRITICAL: Only output JSON. No markdown, no explanation, no code blocks. Do NOT hallucinate field values. If you cannot read a field, set confidence to 0.0 and value to "UNREADABLE"."""

VISION_EXPLANATION_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "human",
            """Explain these document extraction results to the user in {language}. Be helpful and civic.

Document Type: {document_type}
Extracted Fields:
{field_summary}

{missing_summary}
{issue_summary}

Rules:
- Respond in {language}. Keep it brief (2-3 sentences).
- Never display full Aadhaar numbers or PII.
- If fields are missing or have errors, suggest what the user should check.""",
        )
    ]
)


def language_name(locale: Locale) -> str:
    return "Malayalam" if locale == "ml" else "English"


def render_rag_prompt(
    *,
    query: str,
    locale: Locale,
    context_block: str,
    conversation_block: str = "",
    memory_block: str = "",
    retrieval_trace: Sequence[RetrievalTraceEntry] = (),
) -> tuple[str, str]:
    """Return the ``(system, user)`` prompt pair for a grounded answer."""
    trace_block = ""
    if retrieval_trace:
        lines = "\n".join(
            f"  chunk={entry.doc_id} sim={entry.similarity_score:.3f} "
            f"rerank={entry.reranker_score:.3f}"
            for entry in retrieval_trace
        )
        trace_block = f"\nRETRIEVAL TRACE (for audit, do not include in response):\n{lines}"

    system_message, user_message = RAG_PROMPT.format_messages(
        context_block=context_block or "No relevant sources found.",
        conversation_block=conversation_block or "None",
        memory_block=memory_block,
        trace_block=trace_block,
        locale=locale,
        query=query,
        language=language_name(locale),
    )
    return str(system_message.content), str(user_message.content)


def render_vision_explanation(
    *,
    document_type: str,
    fields: Sequence[ExtractedField],
    missing_fields: Sequence[str],
    validation_errors: Sequence[FieldValidationError],
    locale: Locale,
) -> str:
    field_summary = "\n".join(
        f"- {item.name}: {item.value} (confidence: {item.confidence * 100:.0f}%)" for item in fields
    )
    missing_summary = (
        f"Missing: {', '.join(missing_fields)}" if missing_fields else "All expected fields found."
    )
    issue_summary = (
        "Issues:\n" + "\n".join(f"- {error.field}: {error.error}" for error in validation_errors)
        if validation_errors
        else "No issues."
    )
    (message,) = VISION_EXPLANATION_PROMPT.format_messages(
        language=language_name(locale),
        document_type=document_type,
        field_summary=field_summary or "- none",
        missing_summary=missing_summary,
        issue_summary=issue_summary,
    )
    return str(message.content)


def compute_prompt_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:12]
