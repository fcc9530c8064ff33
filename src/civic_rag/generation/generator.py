"""Grounded answer generation with a deterministic template fallback."""

from __future__ import annotations

import logging
import re

from civic_rag.config import GenerationConfig
from civic_rag.generation.sanitizer import ReasoningLeakSanitizer, ResponseSanitizer
from civic_rag.obs.tracing import trim_to_token_budget
from civic_rag.provider.client import InferenceProvider
from civic_rag.provider.errors import PROVIDER_FAILURES
from civic_rag.types import GenerationResult, Locale

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "template-fallback"

_TEMPLATES: dict[str, dict[str, str]] = {
    "register": {
        "en": (
            "To register as a voter, fill Form 6 at voters.eci.gov.in. You need proof of age, "
            "address proof, and a photograph. [Source: ECI Voter Registration Portal]"
        ),
        "ml": (
            "വോട്ടറായി രജിസ്റ്റർ ചെയ്യാൻ, voters.eci.gov.in-ൽ ഫോം 6 പൂരിപ്പിക്കുക. പ്രായ തെളിവ്, "
            "വിലാസ തെളിവ്, ഫോട്ടോ എന്നിവ ആവശ്യമാണ്. [Source: ECI Voter Registration Portal]"
        ),
    },
    "booth": {
        "en": (
            "To find your polling booth, visit electoralsearch.eci.gov.in or SMS your EPIC "
            "number to 1950. [Source: ECI Electoral Search]"
        ),
        "ml": (
            "നിങ്ങളുടെ പോളിംഗ് ബൂത്ത് കണ്ടെത്താൻ, electoralsearch.eci.gov.in സന്ദർശിക്കുക അല്ലെങ്കിൽ "
            "EPIC നമ്പർ 1950-ലേക്ക് SMS ചെയ്യുക. [Source: ECI Electoral Search]"
        ),
    },
    "documents": {
        "en": (
            "Bring your EPIC (Voter ID card) or any of the 12 approved photo IDs: Aadhaar, "
            "Passport, Driving License, PAN Card, etc. [Source: ECI Approved ID Documents]"
        ),
        "ml": (
            "പോളിംഗ് ബൂത്തിൽ EPIC (വോട്ടർ ഐഡി കാർഡ്) അല്ലെങ്കിൽ 12 അംഗീകൃത ഫോട്ടോ ഐഡി രേഖകളിൽ ഒന്ന് "
            "കൊണ്ടുവരിക: ആധാർ, പാസ്‌പോർട്ട്, ഡ്രൈവിംഗ് ലൈസൻസ്, PAN കാർഡ് മുതലായവ. "
            "[Source: ECI Approved ID Documents]"
        ),
    },
    "violation": {
        "en": (
            "To report election violations, use the cVIGIL app, call helpline 1950, or use the "
            '"Report Violation" feature in this app. [Source: ECI cVIGIL]'
        ),
        "ml": (
            "തിരഞ്ഞെടുപ്പ് ലംഘനങ്ങൾ റിപ്പോർട്ട് ചെയ്യാൻ cVIGIL ആപ്പ് ഉപയോഗിക്കുക, 1950 ഹെൽപ്‌ലൈൻ "
            'വിളിക്കുക, അല്ലെങ്കിൽ ഈ ആപ്പിലെ "ലംഘനം റിപ്പോർട്ട് ചെയ്യുക" ഫീച്ചർ ഉപയോഗിക്കുക. '
            "[Source: ECI cVIGIL]"
        ),
    },
    "generic": {
        "en": (
            "I don't have a confident answer for this question. Please check "
            "electoralsearch.eci.gov.in or ceokerala.gov.in. Would you like me to connect you "
            "with a human operator?"
        ),
        "ml": (
            "എനിക്ക് ഈ ചോദ്യത്തിന് ഉറപ്പുള്ള ഉത്തരം നൽകാൻ കഴിയുന്നില്ല. ദയവായി "
            "electoralsearch.eci.gov.in അല്ലെങ്കിൽ ceokerala.gov.in പരിശോധിക്കുക. "
            "ഒരു ഓപ്പറേറ്ററുമായി ബന്ധിപ്പിക്കണമോ?"
        ),
    },
}

# Checked in order; the first template whose pattern matches wins.
_TEMPLATE_KEYWORDS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("register", re.compile(r"register|രജിസ്")),
    ("booth", re.compile(r"booth|ബൂത്ത്")),
    ("documents", re.compile(r"document|\bid\b|രേഖ")),
    ("violation", re.compile(r"violation|report|ലംഘന")),
)
_TEMPLATE_CONFIDENCE = 0.75
_GENERIC_CONFIDENCE = 0.3


def template_fallback(text: str, locale: Locale) -> GenerationResult:
    """Keyword-matched canned answer used whenever the model cannot answer."""
    lowered = text.lower()
    key, confidence = "generic", _GENERIC_CONFIDENCE
    for name, pattern in _TEMPLATE_KEYWORDS:
        if pattern.search(lowered):
            key, confidence = name, _TEMPLATE_CONFIDENCE
            break
    return GenerationResult(
        text=_TEMPLATES[key]["ml" if locale == "ml" else "en"],
        confidence=confidence,
        prompt_tokens=0,
        completion_tokens=0,
        total_tokens=0,
        model=FALLBACK_MODEL,
        used_fallback=True,
    )


class Generator:
    """Calls the chat model and always returns a usable answer."""

    def __init__(
        self,
        provider: InferenceProvider,
        config: GenerationConfig | None = None,
        *,
        sanitizer: ResponseSanitizer | None = None,
    ) -> None:
        self.provider = provider
        self.config = config or GenerationConfig()
        self.sanitizer = sanitizer or ReasoningLeakSanitizer()

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        locale: Locale,
        *,
        query: str | None = None,
    ) -> GenerationResult:
        fallback_key = query if query is not None else user_prompt
        if not self.provider.configured:
            logger.info("generator_fallback reason=not_configured")
            return template_fallback(fallback_key, locale)

        provider_config = self.provider.config
        prompt_budget = provider_config.max_context_tokens - provider_config.max_generation_tokens
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": trim_to_token_budget(user_prompt, prompt_budget)},
        ]
        try:
            completion = await self.provider.chat_completion(
                messages,
                max_tokens=provider_config.max_generation_tokens,
                temperature=self.config.temperature,
                top_p=self.config.top_p,
            )
        except PROVIDER_FAILURES as exc:
            logger.warning("generator_fallback reason=%s error=%s", type(exc).__name__, exc)
            return template_fallback(fallback_key, locale)

        text = self.sanitizer.clean(completion.text)
        if not text:
            logger.warning("generator_fallback reason=empty_after_sanitize")
            return template_fallback(fallback_key, locale)

        confidence = 0.85 if len(text) >= 50 else 0.5
        if completion.finish_reason == "length":
            confidence = min(confidence, 0.65)

        return GenerationResult(
            text=text,
            confidence=confidence,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            total_tokens=completion.total_tokens,
            model=completion.model,
            finish_reason=completion.finish_reason,
        )
