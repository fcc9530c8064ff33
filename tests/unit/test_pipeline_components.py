from civic_rag.pipeline.actions import MAX_ACTIONS, extract_actions
from civic_rag.pipeline.confidence import ConfidenceScorer, parse_self_score, validation_score
from civic_rag.pipeline.engines import (
    CIVIC_BOUNDARY_RESPONSES,
    BoothLocatorEngine,
    EngineRouter,
    resolve_engine,
)
from civic_rag.pipeline.lookup import detect_structured_lookup
from civic_rag.retrieval.knowledge import BoothDirectory
from civic_rag.types import EngineKind, EngineResponse, LookupType, QueryCategory
from civic_rag.understanding.classifier import QueryClassifier
from civic_rag.understanding.safety import NEUTRAL_RESPONSES, OUT_OF_SCOPE_RESPONSES


def test_parse_self_score_strips_marker_line() -> None:
    text, score = parse_self_score("Use Form 6. [Source 1]\nCONFIDENCE_SCORE: 0.82")

    assert text == "Use Form 6. [Source 1]"
    assert score == 0.82


def test_parse_self_score_clamps_and_tolerates_absence() -> None:
    assert parse_self_score("Answer\nCONFIDENCE_SCORE: 7")[1] == 1.0
    assert parse_self_score("Answer only") == ("Answer only", None)


def test_validation_score_penalties() -> None:
    assert validation_score("short", 0) == 0.3
    assert validation_score("x" * 60 + " [Source 1]", 40) == 1.0
    assert validation_score("See [Source 1]", 12) == 0.7
    assert validation_score("x" * 60, 0) == 0.6


def test_confidence_blend_and_escalation() -> None:
    scorer = ConfidenceScorer()
    confidence = scorer.score(
        similarity_scores=[1.0, 0.4],
        reranker_scores=[0.9, 0.7, 0.5],
        self_score=0.8,
        text="x" * 60 + " [Source 1]",
        completion_tokens=30,
    )

    assert confidence == 0.84
    assert scorer.should_escalate(confidence) is False
    assert scorer.should_escalate(confidence, flagged=True) is True
    assert scorer.should_escalate(0.54) is True


def test_empty_signals_score_low() -> None:
    confidence = ConfidenceScorer().score(
        similarity_scores=[], reranker_scores=[], self_score=0.0, text="", completion_tokens=0
    )

    assert 0.0 <= confidence < 0.55


def test_actions_deduplicated_and_capped() -> None:
    actions = extract_actions(
        "How do I register and find my booth to report bribery? Any FAQ?",
        "Use Form 6 and cVIGIL to report.",
        "ml",
    )

    assert len(actions) == MAX_ACTIONS
    assert [action.action for action in actions] == [
        "check_epic",
        "locate_booth",
        "report_violation",
    ]
    assert actions[0].label == "Check Registration"
    assert actions[0].payload == {"locale": "ml"}
    assert len({action.id for action in actions}) == MAX_ACTIONS


def test_no_actions_for_unrelated_text() -> None:
    assert extract_actions("What is NOTA?", "None of the above.", "en") == []


def test_resolve_engine_mapping() -> None:
    assert resolve_engine(QueryCategory.FORM_GUIDANCE) is EngineKind.CIVIC_PROCESS
    assert resolve_engine(QueryCategory.OUT_OF_SCOPE) is EngineKind.CIVIC_BOUNDARY
    assert resolve_engine(QueryCategory.BOOTH_QUERY) is EngineKind.BOOTH_LOCATOR
    assert resolve_engine(QueryCategory.ROLL_LOOKUP) is None
    assert resolve_engine(QueryCategory.GENERAL_FAQ) is None


def test_booth_locator_by_number() -> None:
    engine = BoothLocatorEngine(BoothDirectory())

    found = engine.respond("booth number 3", "en")
    missing = engine.respond("booth 99", "en")

    assert found.confidence == 0.97
    assert "Polling Station 3 Details" in found.formatted_response
    assert "electoralsearch.eci.gov.in" in found.formatted_response
    assert missing.confidence == 0.9
    assert "Booth number 99 was not found" in missing.formatted_response
    assert "1–10" in missing.formatted_response


def test_booth_locator_by_location() -> None:
    engine = BoothLocatorEngine(BoothDirectory())

    nearby = engine.respond("nearest polling booth", "en", 9.6010, 76.5440)
    far = engine.respond("nearest polling booth", "en", 28.6139, 77.2090)
    unknown = engine.respond("nearest polling booth", "ml")

    assert nearby.confidence == 0.95
    assert nearby.formatted_response.startswith("📍 **5 nearest polling booths")
    assert "Govt. LP School Thiruvathukkal" in nearby.formatted_response.split("---")[0]
    assert "\n\n---\n\n" in nearby.formatted_response
    assert far.confidence == 0.9
    assert "No polling booths found within 10 km" in far.formatted_response
    assert unknown.confidence == 0.9
    assert "ലൊക്കേഷൻ" in unknown.formatted_response


class _RuleEngines:
    def __init__(self, text: str = "Polling is open 7 AM to 6 PM.") -> None:
        self.text = text
        self.calls: list[tuple[EngineKind, str | None]] = []

    def respond(self, kind, sub_intent, query, locale):
        self.calls.append((kind, sub_intent))
        if kind is EngineKind.VOTING_RULES:
            return EngineResponse(self.text, 0.92)
        return None


def _engine_router(engines=None) -> EngineRouter:
    return EngineRouter(
        classifier=QueryClassifier(),
        booth_locator=BoothLocatorEngine(BoothDirectory()),
        engines=engines,
    )


def test_engine_router_civic_boundary() -> None:
    result = _engine_router().try_route("Suggest a good hotel in Kottayam", "en")

    assert result is not None
    assert result.engine is EngineKind.CIVIC_BOUNDARY
    assert result.confidence == 0.99
    assert result.formatted_response == CIVIC_BOUNDARY_RESPONSES["en"]
    assert result.escalate is False


def test_engine_router_civic_boundary_keeps_malayalam_template() -> None:
    result = _engine_router().try_route("Suggest a good hotel in Kottayam", "ml")

    assert result.formatted_response == CIVIC_BOUNDARY_RESPONSES["ml"]
    assert result.escalate is False


def test_engine_router_screens_flagged_queries() -> None:
    router = _engine_router()

    weather = router.try_route("What's the weather tomorrow?", "en")
    party = router.try_route("Which party should I vote for?", "en")

    assert weather.engine is EngineKind.CIVIC_BOUNDARY
    assert weather.formatted_response == OUT_OF_SCOPE_RESPONSES["en"]
    assert weather.safety.rule == "out_of_scope"
    assert weather.escalate is True
    assert party.formatted_response == NEUTRAL_RESPONSES["en"]
    assert party.safety.rule == "political_query"
    assert party.escalate is True


def test_engine_router_redacts_engine_text() -> None:
    engines = _RuleEngines("Call 9876543210 or mail help@example.com for poll timings.")

    result = _engine_router(engines).try_route("What time does polling start?", "en")

    assert result.formatted_response == (
        "Call [PHONE REDACTED] or mail [EMAIL REDACTED] for poll timings."
    )
    assert result.safety.redacted_pii is True
    assert result.escalate is False


def test_engine_router_replaces_partisan_engine_text() -> None:
    engines = _RuleEngines("Polling is open 7 AM to 6 PM. Vote for LDF.")

    result = _engine_router(engines).try_route("What time does polling start?", "en")

    assert result.formatted_response == NEUTRAL_RESPONSES["en"]
    assert result.safety.rule == "political_response"
    assert result.escalate is True


def test_engine_router_uses_injected_engines() -> None:
    engines = _RuleEngines()
    router = _engine_router(engines)

    timing = router.try_route("What time does polling start?", "en")
    declined = router.try_route("What is the deadline for nomination date?", "en")

    assert timing is not None
    assert timing.engine is EngineKind.VOTING_RULES
    assert timing.confidence == 0.92
    assert engines.calls[0] == (EngineKind.VOTING_RULES, "poll_timing")
    assert declined is None


def test_engine_router_falls_through() -> None:
    router = _engine_router()

    assert router.try_route("What is NOTA?", "en") is None
    assert router.try_route("How to register as a voter?", "en") is None
    assert router.try_route("Am I registered in the voter list?", "en") is None


def test_structured_lookup_registration_with_params() -> None:
    result = detect_structured_lookup(
        "Am I registered? EPIC ABC1234567, pincode 686001", BoothDirectory()
    )

    assert result is not None
    assert result.type is LookupType.REGISTRATION_CHECK
    assert result.suggested_endpoint == "/api/registration"
    assert result.extracted_params == {"voter_id": "ABC1234567", "pincode": "686001"}
    assert result.message == (
        "Detected registration check query. Suggested endpoint: /api/registration"
    )
    assert result.booth_results is None


def test_structured_lookup_booth_results() -> None:
    directory = BoothDirectory()

    by_text = detect_structured_lookup("my booth in Nattakom", directory)
    by_gps = detect_structured_lookup(
        "where do i vote", directory, latitude=9.5601, longitude=76.5197
    )

    assert by_text is not None and by_text.type is LookupType.BOOTH_SEARCH
    assert by_text.booth_results and by_text.booth_results[0].station_number == 10
    assert by_gps is not None and by_gps.booth_results
    assert by_gps.booth_results[0].station_number == 10
    assert len(by_gps.booth_results) <= 5


def test_structured_lookup_violation_and_miss() -> None:
    directory = BoothDirectory()

    report = detect_structured_lookup("I want to report bribery", directory)

    assert report is not None and report.type is LookupType.VIOLATION_REPORT
    assert detect_structured_lookup("What is NOTA?", directory) is None
