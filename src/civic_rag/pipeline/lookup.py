"""Detects queries that map onto a structured internal lookup."""

from __future__ import annotations

import re
from dataclasses import dataclass

from civic_rag.retrieval.knowledge import BoothDirectory
from civic_rag.types import LookupType, StructuredLookupResult

_EPIC = re.compile(r"\b([A-Z]{3}\d{7})\b")
_PINCODE = re.compile(r"\b(\d{6})\b")
_BOOTH_RESULT_LIMIT = 5


@dataclass(frozen=True, slots=True)
class LookupRule:
    type: LookupType
    endpoint: str
    patterns: tuple[re.Pattern[str], ...]


LOOKUP_RULES: tuple[LookupRule, ...] = (
    LookupRule(
        LookupType.BOOTH_SEARCH,
        "/api/booth",
        (
            re.compile(r"\b(?:booth|polling\s*station|where\s+(?:do\s+)?i\s+vote|my\s+booth)\b", re.I),
            re.compile(r"ബൂത്ത്|പോളിങ്\s*സ്റ്റേഷൻ|എവിടെ\s*വോട്ട്"),
            re.compile(r"^\s*\d{1,3}\s*$"),
        ),
    ),
    LookupRule(
        LookupType.REGISTRATION_CHECK,
        "/api/registration",
        (
            re.compile(r"\b(?:registration|register|enrolled|voter\s*list)\b", re.I),
            re.compile(r"\b(?:check.*(?:epic|voter\s*id)|epic\s*check|voter\s*id\s*(?:check|status))\b", re.I),
            re.compile(r"\b(?:am\s+i\s+registered|is\s+my\s+name)\b", re.I),
            re.compile(r"രജിസ്ട്രേഷൻ|രജിസ്റ്റർ|വോട്ടർ\s*ലിസ്റ്റ്|എപിക്\s*ചെക്ക്"),
        ),
    ),
    LookupRule(
        LookupType.VIOLATION_REPORT,
        "/api/report",
        (
            re.compile(r"\b(?:report|complaint|violation|grievance|bribery|intimidation|malpractice)\b", re.I),
            re.compile(r"റിപ്പോർട്ട്|പരാതി|ലംഘനം|കൈക്കൂലി|ഭീഷണി"),
        ),
    ),
)


def detect_structured_lookup(
    query: str,
    directory: BoothDirectory,
    *,
    latitude: float | None = None,
    longitude: float | None = None,
) -> StructuredLookupResult | None:
    """First matching rule wins; booth searches carry up to five local results."""
    for rule in LOOKUP_RULES:
        if not any(pattern.search(query) for pattern in rule.patterns):
            continue

        params: dict[str, str] = {}
        if match := _EPIC.search(query):
            params["voter_id"] = match.group(1)
        if match := _PINCODE.search(query):
            params["pincode"] = match.group(1)

        booth_results = None
        if rule.type is LookupType.BOOTH_SEARCH:
            if latitude is not None and longitude is not None:
                booth_results = [
                    booth
                    for booth, _ in directory.nearest(
                        latitude, longitude, limit=_BOOTH_RESULT_LIMIT
                    )
                ]
            else:
                booth_results = directory.search(query, limit=_BOOTH_RESULT_LIMIT)

        return StructuredLookupResult(
            type=rule.type,
            suggested_endpoint=rule.endpoint,
            extracted_params=params,
            message=(
                f"Detected {rule.type.value.replace('_', ' ')} query. "
                f"Suggested endpoint: {rule.endpoint}"
            ),
            booth_results=booth_results,
        )
    return None
