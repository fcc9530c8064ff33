"""Blends retrieval, reranker, self-score and validation signals into one confidence."""

from __future__ import annotations

import re
from collections.abc import Sequence

from civic_rag.config import PipelineConfig

_SELF_SCORE = re.compile(r"CONFIDENCE_SCORE:\s*([\d.]+)")
_SELF_SCORE_LINE = re.compile(r"\n?CONFIDENCE_SCORE:\s*[\d.]+[^\n]*")

SIMILARITY_WEIGHT = 0.20
RERANKER_WEIGHT = 0.40
SELF_SCORE_WEIGHT = 0.20
VALIDATION_WEIGHT = 0.20


def _clamp01(value: float) -> float:
    return min(1.0, max(0.0, value))


def parse_self_score(text: str) -> tuple[str, float | None]:
    """Strip the ``CONFIDENCE_SCORE:`` line and return ``(clean_text, score)``."""
    score: float | None = None
    match = _SELF_SCORE.search(text)
    if match:
        try:
            score = _clamp01(float(match.group(1)))
        except ValueError:
            score = None
    return _SELF_SCORE_LINE.sub("", text).strip(), score


def validation_score(text: str, completion_tokens: int) -> float:
    score = 1.0
    if len(text) < 50:
        score -= 0.3
    if "[Source" not in text:
        score -= 0.2
    if completion_tokens == 0:
        score -= 0.2
    return round(max(0.0, score), 2)


class ConfidenceScorer:
    def __init__(self, config: PipelineConfig | None = None) -> None:
        self.config = config or PipelineConfig()

    def score(
        self,
        *,
        similarity_scores: Sequence[float],
        reranker_scores: Sequence[float],
        self_score: float,
        text: str,
        completion_tokens: int,
    ) -> float:
        max_similarity = max(similarity_scores, default=0.0)
        mean_reranker = (
            sum(reranker_scores) / len(reranker_scores) if reranker_scores else 0.0
        )
        blended = (
            SIMILARITY_WEIGHT * max_similarity
            + RERANKER_WEIGHT * mean_reranker
            + SELF_SCORE_WEIGHT * self_score
            + VALIDATION_WEIGHT * validation_score(text, completion_tokens)
        )
        return round(_clamp01(blended), 2)

    def should_escalate(self, confidence: float, flagged: bool = False) -> bool:
        return flagged or confidence < self.config.escalation_threshold
