"""Non-persuasion, civic-boundary and PII rules applied to queries and answers."""

from __future__ import annotations

import logging
import re

from civic_rag.types import Locale, SafetyResult

logger = logging.getLogger(__name__)

_MALAYALAM = re.compile(r"[\u0D00-\u0D7F]")

_POLITICAL = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"vote\s+for\s+\w",
        r"best\s+(?:party|candidate)",
        r"(?:party|candidate)\s+is\s+best",
        r"should\s+(?:i|you)\s+vote\s+(?:for|against)",
        r"which\s+(?:party|candidate)\b",
        r"recommend.*(?:party|candidate)",
        r"support.*\b(?:bjp|inc|congress|cpi|iuml|ldf|udf|nda)\b",
        r"who\s+(?:will|should)\s+win",
        r"government\s+perform",
        r"ഏത്\s*(?:പാർട്ടി|സ്ഥാനാർത്ഥി)",
        r"(?:പാർട്ടി|സ്ഥാനാർത്ഥി).*(?:നല്ല|ശുപാർശ|best)",
        r"ശുപാർശ",
        r"\b(?:bjp|congress|ldf|udf|cpi|iuml|nda)\b.*(?:വോട്ട്|നല്ല|best)",
        r"(?:ldf|udf|bjp|congress|cpi|iuml|nda).*(?:പ്രകടന\s*പത്രിക|manifesto)",
        r"സർക്കാരിന്റെ\s*പ്രകടനം",
    )
)

_OUT_OF_SCOPE = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(?:weather|sports|cricket|movie|recipe|joke|song|game)\b",
        r"\b(?:stock|market|crypto|bitcoin|investment)\b",
        r"\b(?:homework|assignment|math\s+problem|solve\s+equation)\b",
        r"\b(?:write\s+me\s+an?|compose|draft\s+an?\s+(?:letter|essay|email))\b",
        r"\btranslate\b(?!.*\b(?:voter|election|booth)\b)",
    )
)

_ADVERSARIAL = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bignore\s+(?:previous|all|your|above)\s+(?:instructions?|rules?|prompt|system)\b",
        r"\b(?:bypass|override|disable)\s+(?:safety|filter|rules?|guardrails?|restrictions?)\b",
        r"\b(?:dan\s+mode|jailbreak|developer\s+mode)\b",
        r"\b(?:reveal|show|print|display)\s+(?:your|the|system)\s+(?:prompt|instructions?)\b",
        r"\bpretend\s+(?:to\s+be|you(?:'re|\s+are))\b",
        r"\brig\s+(?:the\s+)?election\b|\bfake\s+(?:vote|ballot|id)\b",
        r"\b(?:kill|murder|attack|bomb)\s+(?:yourself|you|me)\b",
        r"\bf[u*]+ck\b|\bscrew\s+you\b|\bhate\s+you\b",
        r"\byou(?:'re|\s+are)\s+(?:stupid|useless|trash|garbage|worthless|dumb|an?\s+idiot)\b",
    )
)

NEUTRAL_RESPONSES: dict[str, str] = {
    "en": (
        "I'm an impartial voter information assistant. I cannot recommend any political party or "
        "candidate. For election-related questions, I can help with registration, booth "
        "locations, required documents, voting rules, complaint filing, and election schedules. "
        "Please visit eci.gov.in for official information."
    ),
    "ml": (
        "ഞാൻ ഒരു നിഷ്പക്ഷ വോട്ടർ വിവര സഹായിയാണ്. ഒരു രാഷ്ട്രീയ പാർട്ടിയെയോ സ്ഥാനാർത്ഥിയെയോ ശുപാർശ "
        "ചെയ്യാൻ എനിക്ക് കഴിയില്ല. രജിസ്ട്രേഷൻ, ബൂത്ത് ലൊക്കേഷനുകൾ, ആവശ്യമായ രേഖകൾ, വോട്ടിങ് നിയമങ്ങൾ, "
        "പരാതി നൽകൽ, തിരഞ്ഞെടുപ്പ് ഷെഡ്യൂൾ എന്നിവയിൽ സഹായിക്കാം. eci.gov.in സന്ദർശിക്കുക."
    ),
}

OUT_OF_SCOPE_RESPONSES: dict[str, str] = {
    "en": (
        "I'm Vaakku, a voter information assistant for Kottayam district elections. I can only "
        "help with election-related topics: voter registration, booth information, voting rules, "
        "election schedule, and complaint filing. For other queries, please use a general-purpose "
        "assistant. 📞 Election Helpline: 1950"
    ),
    "ml": (
        "ഞാൻ വാക്ക്, കോട്ടയം ജില്ല തിരഞ്ഞെടുപ്പ് വിവര സഹായി ആണ്. വോട്ടർ രജിസ്ട്രേഷൻ, ബൂത്ത് വിവരങ്ങൾ, "
        "വോട്ടിങ് നിയമങ്ങൾ, തിരഞ്ഞെടുപ്പ് ഷെഡ്യൂൾ, പരാതി നൽകൽ എന്നിവയിൽ മാത്രമേ സഹായിക്കാൻ കഴിയൂ. "
        "📞 ഹെൽപ്‌ലൈൻ: 1950"
    ),
}

BOUNDARY_RESPONSES: dict[str, str] = {
    "en": (
        "I can't help with that request. I'm here to answer questions about voter registration, "
        "polling booths, voting rules, and election complaints in Kottayam. 📞 Helpline: 1950"
    ),
    "ml": (
        "ഈ അഭ്യർത്ഥനയിൽ സഹായിക്കാൻ എനിക്ക് കഴിയില്ല. കോട്ടയത്തെ വോട്ടർ രജിസ്ട്രേഷൻ, പോളിങ് ബൂത്തുകൾ, "
        "വോട്ടിങ് നിയമങ്ങൾ, തിരഞ്ഞെടുപ്പ് പരാതികൾ എന്നിവയെക്കുറിച്ച് ചോദിക്കാം. 📞 ഹെൽപ്‌ലൈൻ: 1950"
    ),
}

# Applied in order; Aadhaar runs before phone so 12-digit ids are not split.
_PII_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?<![\w+])\d{4}[ -]?\d{4}[ -]?\d{4}(?![\w])"), "[AADHAAR REDACTED]"),
    (re.compile(r"\b[A-Z]{3}\d{7}\b"), "[EPIC REDACTED]"),
    (re.compile(r"\b[A-Z]{5}\d{4}[A-Z]\b"), "[PAN REDACTED]"),
    (re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b"), "[EMAIL REDACTED]"),
    (re.compile(r"(?<![\w+])(?:\+91|91|0)?[6-9]\d{9}(?!\d)"), "[PHONE REDACTED]"),
)


def detect_locale(text: str) -> Locale:
    return "ml" if _MALAYALAM.search(text) else "en"


def redact_pii(text: str) -> tuple[str, bool]:
    """Replace Aadhaar, EPIC, PAN, email and phone values with placeholders."""
    redacted = False
    for pattern, placeholder in _PII_PATTERNS:
        text, count = pattern.subn(placeholder, text)
        redacted = redacted or count > 0
    return text, redacted


class SafetyFilter:
    """Ordered first-match rules; a match replaces the text with a fixed response."""

    def screen_query(self, query: str, locale: Locale | None = None) -> SafetyResult:
        """Query-only rules, evaluated before any retrieval or generation."""
        return self._evaluate("", query, locale, check_candidate=False)

    def check(
        self, candidate_text: str, user_query: str, locale: Locale | None = None
    ) -> SafetyResult:
        return self._evaluate(candidate_text, user_query, locale, check_candidate=True)

    def _evaluate(
        self,
        candidate_text: str,
        user_query: str,
        locale: Locale | None,
        *,
        check_candidate: bool,
    ) -> SafetyResult:
        lang = locale or detect_locale(user_query)
        rule: str | None = None
        reason: str | None = None
        safe_text = candidate_text

        if _matches(_POLITICAL, user_query):
            rule, reason = "political_query", "Political persuasion detected in query"
            safe_text = NEUTRAL_RESPONSES[lang]
        elif _matches(_OUT_OF_SCOPE, user_query):
            rule, reason = "out_of_scope", "Out-of-scope topic detected"
            safe_text = OUT_OF_SCOPE_RESPONSES[lang]
        elif _matches(_ADVERSARIAL, user_query):
            rule, reason = "adversarial", "Adversarial or abusive phrasing detected"
            safe_text = BOUNDARY_RESPONSES[lang]
        elif check_candidate and _matches(_POLITICAL, candidate_text):
            rule, reason = "political_response", "Political content detected in response"
            safe_text = NEUTRAL_RESPONSES[locale or detect_locale(candidate_text)]

        safe_text, redacted = redact_pii(safe_text)
        if rule is not None:
            logger.info("safety_flagged rule=%s locale=%s", rule, lang)
        return SafetyResult(
            flagged=rule is not None,
            safe=rule is None,
            safe_text=safe_text,
            redacted_pii=redacted,
            reason=reason,
            rule=rule,
        )


def _matches(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(pattern.search(text) for pattern in patterns)
