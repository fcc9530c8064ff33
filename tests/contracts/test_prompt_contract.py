from civic_rag.generation.prompts import RAG_SYSTEM_PROMPT, VISION_EXTRACTION_PROMPT
from civic_rag.pipeline.confidence import parse_self_score
from civic_rag.understanding.safety import NEUTRAL_RESPONSES


def test_prompt_contains_grounding_and_neutrality_constraints() -> None:
    assert "[Source N]" in RAG_SYSTEM_PROMPT
    assert "NEVER provide political endorsements" in RAG_SYSTEM_PROMPT
    assert "CONFIDENCE_SCORE:" in RAG_SYSTEM_PROMPT
    assert "Do NOT output any internal reasoning" in RAG_SYSTEM_PROMPT


def test_self_score_line_never_reaches_the_user() -> None:
    answer = "Polling runs from 7 AM to 6 PM [Source 2].\nCONFIDENCE_SCORE: 0.9"

    text, score = parse_self_score(answer)

    assert "CONFIDENCE_SCORE" not in text
    assert score == 0.9


def test_extraction_prompt_demands_json_only() -> None:
    assert "RESPOND ONLY with valid JSON" in VISION_EXTRACTION_PROMPT
    assert "UNREADABLE" in VISION_EXTRACTION_PROMPT


def test_neutral_responses_point_to_official_source() -> None:
    assert all("eci.gov.in" in response for response in NEUTRAL_RESPONSES.values())
