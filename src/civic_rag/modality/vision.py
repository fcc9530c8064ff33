"""Two-pass document extraction for voter documents."""

from __future__ import annotations

import base64
import json
import logging
import re
from collections.abc import Callable
from typing import Any

from civic_rag.generation.prompts import (
    VISION_EXTRACTION_PROMPT,
    language_name,
    render_vision_explanation,
)
from civic_rag.generation.sanitizer import ReasoningLeakSanitizer, ResponseSanitizer
from civic_rag.obs.tracing import Timer
from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.errors import PROVIDER_FAILURES, InvalidMediaError
from civic_rag.types import ExtractedField, FieldValidationError, Locale, VisionExtractionResult
from civic_rag.understanding.safety import redact_pii

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 20 * 1024 * 1024
SUPPORTED_IMAGE_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/gif"}
)

DOCUMENT_FIELDS: dict[str, tuple[str, ...]] = {
    "epic_card": (
        "epic_number",
        "name",
        "name_local",
        "relative_name",
        "relative_relation",
        "dob_or_age",
        "gender",
        "address",
        "constituency",
        "part_number",
        "serial_number",
        "photo_present",
    ),
    "form_6": (
        "name",
        "surname",
        "relative_name",
        "relative_relation",
        "dob",
        "gender",
        "address",
        "constituency",
        "state",
        "phone",
        "email",
        "declaration_signed",
        "date",
    ),
    "form_6a": (
        "name",
        "passport_number",
        "address_abroad",
        "address_india",
        "constituency",
        "date",
    ),
    "form_7": (
        "objective",
        "name_to_delete",
        "epic_number",
        "reason",
        "objector_name",
        "objector_epic",
        "date",
    ),
    "form_8": (
        "type_of_correction",
        "current_entry",
        "corrected_entry",
        "epic_number",
        "name",
        "date",
    ),
    "aadhaar": ("aadhaar_number", "name", "dob", "gender", "address"),
    "unknown": (),
}


def _rule(pattern: str, message: str, *, flags: int = 0, strip: str = "") -> Callable[[str], str | None]:
    compiled = re.compile(pattern, flags)

    def validate(value: str) -> str | None:
        candidate = re.sub(strip, "", value) if strip else value
        return None if compiled.search(candidate) else message

    return validate


FIELD_VALIDATORS: dict[str, Callable[[str], str | None]] = {
    "epic_number": _rule(
        r"^[A-Z]{3}\d{7}$", "EPIC format should be 3 letters + 7 digits (e.g., ABC1234567)"
    ),
    "aadhaar_number": _rule(r"^\d{12}$", "Aadhaar should be 12 digits", strip=r"\s"),
    "dob": _rule(r"\d{2}[/-]\d{2}[/-]\d{4}|\d{4}[/-]\d{2}[/-]\d{2}", "Date format unclear"),
    "gender": _rule(
        r"^(?:male|female|other|transgender|M|F|O|T|പുരുഷൻ|സ്ത്രീ)$",
        "Gender value unclear",
        flags=re.IGNORECASE,
    ),
    "phone": _rule(r"^(?:\+91|91|0)?[6-9]\d{9}$", "Phone number format invalid", strip=r"[\s-]"),
    "email": _rule(r"^[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}$", "Email format invalid"),
}

_UNREADABLE: dict[str, str] = {
    "en": "Sorry, the document could not be read clearly. Please provide a clearer image.",
    "ml": "ക്ഷമിക്കണം, ഡോക്യുമെന്റ് വ്യക്തമായി വായിക്കാൻ കഴിഞ്ഞില്ല. ദയവായി വ്യക്തമായ ഒരു ചിത്രം നൽകുക.",
}

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def validate_image(image: bytes, mime_type: str | None = None) -> None:
    if not image:
        raise InvalidMediaError("Empty image data")
    if len(image) > MAX_IMAGE_BYTES:
        raise InvalidMediaError(
            f"Image exceeds 20MB limit ({len(image) / 1024 / 1024:.1f}MB)"
        )
    if mime_type and mime_type not in SUPPORTED_IMAGE_TYPES:
        raise InvalidMediaError(f"Unsupported image format: {mime_type}")


def parse_extraction(text: str) -> dict[str, Any]:
    """Pull the JSON object out of a model reply, tolerating fences and preambles."""
    body = text.strip()
    if "</think>" in body:
        body = body.rsplit("</think>", 1)[1].strip()
    fenced = _CODE_FENCE.search(body)
    if fenced:
        body = fenced.group(1).strip()
    elif not body.startswith("{") and "{" in body:
        body = body[body.index("{") : body.rindex("}") + 1]
    parsed = json.loads(body)
    if not isinstance(parsed, dict):
        raise ValueError("extraction payload is not an object")
    return parsed


def validate_fields(fields: list[ExtractedField]) -> list[FieldValidationError]:
    errors: list[FieldValidationError] = []
    for item in fields:
        validator = FIELD_VALIDATORS.get(item.name)
        if validator is None:
            continue
        error = validator(item.value)
        if error:
            errors.append(FieldValidationError(field=item.name, error=error))
    return errors


def extraction_confidence(overall: float, missing: int, errors: int) -> float:
    value = max(0.0, overall) * (1 - missing * 0.05) * (1 - errors * 0.1)
    return round(min(1.0, max(0.0, value)), 2)


class VisionExtractor:
    """Pass 1 extracts JSON fields from the image; pass 2 explains them in the user's language."""

    def __init__(
        self,
        provider: InferenceProvider,
        *,
        sanitizer: ResponseSanitizer | None = None,
    ) -> None:
        self.provider = provider
        self.sanitizer = sanitizer or ReasoningLeakSanitizer()

    async def extract(self, image: bytes, mime_type: str, locale: Locale) -> VisionExtractionResult:
        validate_image(image, mime_type)
        model = self.provider.config.generator_model
        with Timer() as timer:
            try:
                parsed = await self._extract_fields(image, mime_type)
            except (*PROVIDER_FAILURES, ValueError) as exc:
                logger.warning("vision_extraction_failed error=%s", type(exc).__name__)
                parsed = None

            if parsed is None:
                result = unreadable_result(locale, model)
            else:
                result = await self._build_result(parsed, locale, model)

        result.latency_ms = timer.elapsed_ms
        logger.info(
            "vision_extracted document_type=%s fields=%d missing=%d errors=%d confidence=%.2f",
            result.detected_document_type,
            len(result.extracted_fields),
            len(result.missing_fields),
            len(result.validation_errors),
            result.confidence,
        )
        return result

    async def _extract_fields(self, image: bytes, mime_type: str) -> dict[str, Any]:
        data_uri = f"data:{mime_type};base64,{base64.b64encode(image).decode('ascii')}"
        completion = await self.provider.chat_completion(
            [
                {
                    "role": "system",
                    "content": "You are a document analysis AI. Respond only with valid JSON.",
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": VISION_EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": data_uri}},
                    ],
                },
            ],
            max_tokens=800,
            temperature=0.1,
            top_p=0.95,
        )
        return parse_extraction(completion.text)

    async def _build_result(
        self, parsed: dict[str, Any], locale: Locale, model: str
    ) -> VisionExtractionResult:
        document_type = str(parsed.get("document_type") or "unknown")
        if document_type not in DOCUMENT_FIELDS:
            document_type = "unknown"

        fields = [_to_field(raw) for raw in parsed.get("fields") or [] if isinstance(raw, dict)]
        found = {item.name for item in fields}
        missing = [name for name in DOCUMENT_FIELDS[document_type] if name not in found]
        errors = validate_fields(fields)
        try:
            overall = float(parsed.get("overall_confidence") or 0.0)
        except (TypeError, ValueError):
            overall = 0.0

        explanation = await self._explain(document_type, fields, missing, errors, locale)
        return VisionExtractionResult(
            detected_document_type=document_type,
            extracted_fields=fields,
            confidence=extraction_confidence(overall, len(missing), len(errors)),
            missing_fields=missing,
            validation_errors=errors,
            explanation=explanation,
            latency_ms=0.0,
            model=model,
        )

    async def _explain(
        self,
        document_type: str,
        fields: list[ExtractedField],
        missing: list[str],
        errors: list[FieldValidationError],
        locale: Locale,
    ) -> str:
        prompt = render_vision_explanation(
            document_type=document_type,
            fields=fields,
            missing_fields=missing,
            validation_errors=errors,
            locale=locale,
        )
        try:
            completion = await self.provider.chat_completion(
                [
                    {
                        "role": "system",
                        "content": f"You are Vaakku, a civic assistant. Respond in {language_name(locale)}.",
                    },
                    {"role": "user", "content": prompt},
                ],
                max_tokens=300,
                temperature=0.4,
            )
            explanation = self.sanitizer.clean(completion.text)
        except PROVIDER_FAILURES as exc:
            logger.warning("vision_explanation_failed error=%s", type(exc).__name__)
            explanation = ""
        if not explanation:
            explanation = _summary(document_type, len(fields), locale)
        return redact_pii(explanation)[0]


def _to_field(raw: dict[str, Any]) -> ExtractedField:
    try:
        confidence = float(raw.get("confidence") or 0.0)
    except (TypeError, ValueError):
        confidence = 0.0
    return ExtractedField(
        name=str(raw.get("name") or ""),
        value=str(raw.get("value") or ""),
        confidence=min(1.0, max(0.0, confidence)),
    )


def _summary(document_type: str, field_count: int, locale: Locale) -> str:
    label = "" if document_type == "unknown" else document_type.replace("_", " ")
    if locale == "ml":
        return f"{label or 'ഒരു'} ഡോക്യുമെന്റ് കണ്ടെത്തി. {field_count} ഫീൽഡുകൾ എക്സ്ട്രാക്ട് ചെയ്തു."
    return " ".join(f"Detected a {label} document. Extracted {field_count} fields.".split())


def unreadable_result(
    locale: Locale, model: str, error: str = "Failed to parse extraction result"
) -> VisionExtractionResult:
    return VisionExtractionResult(
        detected_document_type="unknown",
        extracted_fields=[],
        confidence=0.0,
        missing_fields=[],
        validation_errors=[FieldValidationError(field="parse", error=error)],
        explanation=_UNREADABLE["ml" if locale == "ml" else "en"],
        latency_ms=0.0,
        model=model,
    )
