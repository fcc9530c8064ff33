"""Deterministic engine dispatch for classified queries."""

from __future__ import annotations

import logging
from typing import Protocol

from civic_rag.config import PipelineConfig
from civic_rag.retrieval.knowledge import BoothDirectory, parse_booth_number
from civic_rag.types import (
    ClassificationResult,
    EngineDirectResult,
    EngineKind,
    EngineResponse,
    Locale,
    QueryCategory,
)
from civic_rag.understanding.classifier import QueryClassifier
from civic_rag.understanding.safety import SafetyFilter

logger = logging.getLogger(__name__)

CIVIC_BOUNDARY_RESPONSES: dict[str, str] = {
    "en": (
        "I am an impartial voter information assistant. I cannot provide political opinions, "
        "party recommendations, or election predictions. I can help with voter registration, "
        "booth information, voting process, complaint filing, and election schedules. "
        "📞 Helpline: 1950"
    ),
    "ml": (
        "ഞാൻ ഒരു നിഷ്പക്ഷ വോട്ടർ വിവര സഹായിയാണ്. രാഷ്ട്രീയ അഭിപ്രായങ്ങൾ, പാർട്ടി ശുപാർശകൾ, അല്ലെങ്കിൽ "
        "തിരഞ്ഞെടുപ്പ് പ്രവചനങ്ങൾ നൽകാൻ എനിക്ക് കഴിയില്ല. വോട്ടർ രജിസ്ട്രേഷൻ, ബൂത്ത് വിവരങ്ങൾ, വോട്ടിങ് "
        "പ്രക്രിയ, പരാതി നൽകൽ എന്നിവയെക്കുറിച്ച് ചോദിക്കാം. 📞 ഹെൽപ്‌ലൈൻ: 1950"
    ),
}

_LOCATION_PROMPT: dict[str, str] = {
    "en": (
        "📍 To find your nearest polling booth, please **share your location** (tap the 📍 "
        "button) or type your booth number / area name."
    ),
    "ml": (
        "📍 നിങ്ങളുടെ അടുത്തുള്ള പോളിങ് ബൂത്ത് കണ്ടെത്താൻ, ദയവായി **ലൊക്കേഷൻ ഷെയർ ചെയ്യുക** "
        "(📍 ബട്ടൺ അമർത്തുക) അല്ലെങ്കിൽ നിങ്ങളുടെ ബൂത്ത് നമ്പർ / സ്ഥലപ്പേര് ടൈപ്പ് ചെയ്യുക."
    ),
}

_NONE_NEARBY: dict[str, str] = {
    "en": (
        "😔 No polling booths found within 10 km of your location. Please try providing your "
        "booth number or area name for a more specific search. 📞 Helpline: 1950"
    ),
    "ml": (
        "😔 നിങ്ങളുടെ സ്ഥാനത്തിന് 10 കിലോമീറ്റർ ചുറ്റളവിൽ പോളിങ് ബൂത്തുകൾ കണ്ടെത്താനായില്ല. ദയവായി "
        "നിങ്ങളുടെ ബൂത്ത് നമ്പർ അല്ലെങ്കിൽ സ്ഥലപ്പേര് നൽകുക. 📞 ഹെൽപ്‌ലൈൻ: 1950"
    ),
}

_VERIFY_FOOTER: dict[str, str] = {
    "en": (
        "\n\nLAC 97-Kottayam, District 10-Kottayam. For verification, visit "
        "[electoralsearch.eci.gov.in](https://electoralsearch.eci.gov.in/)."
    ),
    "ml": (
        "\n\nLAC 97-Kottayam, District 10-Kottayam. സ്ഥിരീകരണത്തിന് "
        "[electoralsearch.eci.gov.in](https://electoralsearch.eci.gov.in/) സന്ദർശിക്കുക."
    ),
}

_CARD_SEPARATOR = "\n\n---\n\n"


class CivicEngines(Protocol):
    """Externally supplied content engines for rules, forms, complaints and timelines."""

    def respond(
        self, kind: EngineKind, sub_intent: str | None, query: str, locale: Locale
    ) -> EngineResponse | None:
        ...


def resolve_engine(category: QueryCategory) -> EngineKind | None:
    match category:
        case QueryCategory.VOTING_RULES:
            return EngineKind.VOTING_RULES
        case QueryCategory.FORM_GUIDANCE:
            return EngineKind.CIVIC_PROCESS
        case QueryCategory.COMPLAINT:
            return EngineKind.COMPLAINT
        case QueryCategory.TIMELINE:
            return EngineKind.TIMELINE
        case QueryCategory.OUT_OF_SCOPE:
            return EngineKind.CIVIC_BOUNDARY
        case QueryCategory.BOOTH_QUERY:
            return EngineKind.BOOTH_LOCATOR
        case _:
            return None


class BoothLocatorEngine:
    """Answers booth questions from the local directory by number or GPS position."""

    def __init__(self, directory: BoothDirectory, *, radius_km: float = 10.0) -> None:
        self.directory = directory
        self.radius_km = radius_km

    def respond(
        self,
        query: str,
        locale: Locale,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> EngineResponse:
        lang = "ml" if locale == "ml" else "en"
        number = parse_booth_number(query)
        if number is not None:
            booths = self.directory.by_number(number)
            if not booths:
                return EngineResponse(self._not_found(number, lang), 0.9)
            if len(booths) == 1:
                header = (
                    f"📍 **പോളിങ് സ്റ്റേഷൻ {number} വിവരങ്ങൾ:**\n\n"
                    if lang == "ml"
                    else f"📍 **Polling Station {number} Details:**\n\n"
                )
            else:
                header = (
                    f"📍 **{len(booths)} പോളിങ് സ്റ്റേഷനുകൾ കണ്ടെത്തി:**\n\n"
                    if lang == "ml"
                    else f"📍 **{len(booths)} matching polling stations found:**\n\n"
                )
            cards = _CARD_SEPARATOR.join(
                self.directory.format_booth(booth, lang) for booth in booths[:3]
            )
            return EngineResponse(header + cards + _VERIFY_FOOTER[lang], 0.97)

        if latitude is not None and longitude is not None:
            nearest = self.directory.nearest(latitude, longitude, radius_km=self.radius_km)
            if not nearest:
                return EngineResponse(_NONE_NEARBY[lang], 0.9)
            header = (
                f"📍 **നിങ്ങളുടെ സമീപത്തുള്ള {len(nearest)} പോളിങ് ബൂത്തുകൾ:**\n\n"
                if lang == "ml"
                else f"📍 **{len(nearest)} nearest polling booths to your location:**\n\n"
            )
            cards = _CARD_SEPARATOR.join(
                self.directory.format_nearest(booth, distance, lang)
                for booth, distance in nearest
            )
            return EngineResponse(header + cards, 0.95)

        return EngineResponse(_LOCATION_PROMPT[lang], 0.9)

    def _not_found(self, number: int, lang: str) -> str:
        low, high = self.directory.station_range
        if lang == "ml":
            return (
                f"😔 ബൂത്ത് നമ്പർ {number} ഞങ്ങളുടെ LAC 97-Kottayam ഡാറ്റയിൽ കണ്ടെത്താനായില്ല. "
                f"ബൂത്ത് നമ്പറുകൾ {low}–{high} ശ്രേണിയിലാണ്. ദയവായി പരിശോധിച്ച് വീണ്ടും ശ്രമിക്കുക. "
                "📞 ഹെൽപ്‌ലൈൻ: 1950"
            )
        return (
            f"😔 Booth number {number} was not found in our LAC 97-Kottayam data. Booth numbers "
            f"range from {low}–{high}. Please verify and try again. 📞 Helpline: 1950"
        )


class EngineRouter:
    """Classifies a query and answers it directly when an engine claims it."""

    def __init__(
        self,
        *,
        classifier: QueryClassifier,
        booth_locator: BoothLocatorEngine,
        engines: CivicEngines | None = None,
        safety: SafetyFilter | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.classifier = classifier
        self.booth_locator = booth_locator
        self.engines = engines
        self.safety = safety or SafetyFilter()
        self.config = config or PipelineConfig()

    def try_route(
        self,
        query: str,
        locale: Locale,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> EngineDirectResult | None:
        classification = self.classifier.classify(query)
        if classification.confidence < self.config.engine_confidence_threshold:
            return None
        kind = resolve_engine(classification.category)
        if kind is None:
            return None

        if kind is EngineKind.CIVIC_BOUNDARY:
            lang = "ml" if locale == "ml" else "en"
            response = EngineResponse(CIVIC_BOUNDARY_RESPONSES[lang], 0.99)
        elif kind is EngineKind.BOOTH_LOCATOR:
            response = self.booth_locator.respond(query, locale, latitude, longitude)
        elif self.engines is None:
            return None
        else:
            response = self.engines.respond(kind, classification.sub_intent, query, locale)
            if response is None:
                logger.debug("engine_declined engine=%s", kind.value)
                return None
        return self._screened(kind, classification, response, query, locale)

    def _screened(
        self,
        kind: EngineKind,
        classification: ClassificationResult,
        response: EngineResponse,
        query: str,
        locale: Locale,
    ) -> EngineDirectResult:
        # The boundary reply is a fixed template, so only the query rules apply to it.
        if kind is EngineKind.CIVIC_BOUNDARY:
            safety = self.safety.screen_query(query, locale)
            text = safety.safe_text if safety.flagged else response.formatted_response
        else:
            safety = self.safety.check(response.formatted_response, query, locale)
            text = safety.safe_text
        if safety.flagged:
            logger.info("engine_response_screened engine=%s rule=%s", kind.value, safety.rule)
        return EngineDirectResult(
            engine=kind,
            classification=classification,
            formatted_response=text,
            confidence=response.confidence,
            safety=safety,
            escalate=safety.flagged,
        )
