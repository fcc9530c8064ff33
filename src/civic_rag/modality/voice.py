"""Audio transcription and transcript post-processing."""

from __future__ import annotations

import logging
import re

from civic_rag.obs.tracing import Timer
from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.errors import InvalidMediaError
from civic_rag.types import Locale, VoiceResult
from civic_rag.understanding.safety import redact_pii

logger = logging.getLogger(__name__)

MAX_AUDIO_BYTES = 25 * 1024 * 1024
SUPPORTED_AUDIO_TYPES = frozenset(
    {
        "audio/webm",
        "audio/wav",
        "audio/mpeg",
        "audio/mp3",
        "audio/mp4",
        "audio/ogg",
        "audio/flac",
        "audio/x-m4a",
    }
)

_MALAYALAM_CHAR = re.compile(r"[ഀ-ൿ]")
_MALAYALAM_SHARE = 0.3

_FILLERS_EN = (
    re.compile(r"\b(?:um+|uh+|hmm+|ah+|er+|like,?\s*you know)\b", re.IGNORECASE),
    # Only the last of repeated hedges survives.
    re.compile(
        r"\b(?:basically|actually|literally)\b(?=.*\b(?:basically|actually|literally)\b)",
        re.IGNORECASE,
    ),
)
_FILLERS_ML = (re.compile(r"(?:അത്|പിന്നെ|അതായത്)\s+(?=.*(?:അത്|പിന്നെ|അതായത്))"),)

_TTS_EXPANSIONS: tuple[tuple[re.Pattern[str], str, str], ...] = (
    (re.compile(r"\bEPIC\b"), "E.P.I.C.", "എപിക്"),
    (re.compile(r"\bECI\b"), "Election Commission of India", "ഇലക്ഷൻ കമ്മീഷൻ"),
    (re.compile(r"\bDEO\b"), "District Election Officer", "ജില്ലാ ഇലക്ഷൻ ഓഫീസർ"),
    (re.compile(r"\bBLO\b"), "Booth Level Officer", "ബൂത്ത് ലെവൽ ഓഫീസർ"),
    (re.compile(r"\bSVEEP\b"), "S.V.E.E.P.", "സ്വീപ്"),
)


def detect_locale(text: str, provider_language: str | None = None) -> Locale:
    """Trust the provider's language tag, else count Malayalam characters."""
    tag = (provider_language or "").lower()
    if tag in ("ml", "malayalam"):
        return "ml"
    if tag in ("en", "english"):
        return "en"
    visible = re.sub(r"\s", "", text)
    if not visible:
        return "en"
    share = len(_MALAYALAM_CHAR.findall(visible)) / len(visible)
    return "ml" if share > _MALAYALAM_SHARE else "en"


def validate_audio(audio: bytes, content_type: str | None = None) -> None:
    if not audio:
        raise InvalidMediaError("Empty audio data")
    if len(audio) > MAX_AUDIO_BYTES:
        raise InvalidMediaError(
            f"Audio exceeds 25MB limit ({len(audio) / 1024 / 1024:.1f}MB)"
        )
    if content_type and content_type not in SUPPORTED_AUDIO_TYPES:
        raise InvalidMediaError(
            f"Unsupported audio format: {content_type}. "
            f"Supported: {', '.join(sorted(SUPPORTED_AUDIO_TYPES))}"
        )


def remove_fillers(text: str, language: str) -> str:
    patterns = _FILLERS_EN
    if language.lower().startswith("ml") or language.lower() == "malayalam":
        patterns = _FILLERS_EN + _FILLERS_ML
    for pattern in patterns:
        text = pattern.sub("", text)
    return re.sub(r"\s{2,}", " ", text).strip()


def format_for_tts(text: str, locale: Locale) -> str:
    for pattern, english, malayalam in _TTS_EXPANSIONS:
        text = pattern.sub(malayalam if locale == "ml" else english, text)
    return re.sub(r"\.\s", ". ... ", text)


class VoicePipeline:
    def __init__(self, provider: InferenceProvider) -> None:
        self.provider = provider

    async def process(
        self,
        audio: bytes,
        filename: str = "audio.webm",
        content_type: str | None = None,
    ) -> VoiceResult:
        """Validate, transcribe and normalize one recording.

        Raises ``InvalidMediaError`` for rejected input; provider failures
        propagate so the router can choose its fallback.
        """
        validate_audio(audio, content_type)
        with Timer() as timer:
            transcription = await self.provider.transcribe(
                audio, filename=filename, content_type=content_type
            )
            locale = detect_locale(transcription.text, transcription.language)
            cleaned = remove_fillers(transcription.text, transcription.language)
            tts_ready = format_for_tts(cleaned, locale)
            audit_transcript, _ = redact_pii(cleaned)

        logger.info(
            "voice_transcribed locale=%s language=%s duration_s=%.1f chars=%d fillers_removed=%s",
            locale,
            transcription.language,
            transcription.duration,
            len(cleaned),
            cleaned != transcription.text,
        )
        return VoiceResult(
            transcript=cleaned,
            raw_transcript=transcription.text,
            locale=locale,
            provider_language=transcription.language,
            duration_seconds=transcription.duration,
            latency_ms=timer.elapsed_ms,
            model=transcription.model,
            audit_transcript=audit_transcript,
            fillers_removed=cleaned != transcription.text,
            tts_ready=tts_ready,
        )
