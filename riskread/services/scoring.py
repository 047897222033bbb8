"""Deterministic risk scoring over a decoded model assessment.

Every function here is pure: the same insights, fields and questions always
produce the same scores. The coefficients and caps are part of the public
contract, so change them only together with the tests.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal, Sequence

from ..models.findings import ExtractedField, Insight, Question, StructuredAnalysis

RiskLevel = Literal["low", "medium", "high"]

WEIGHTS: dict[str, float] = {
    "relevance": 0.25,
    "completeness": 0.20,
    "risk": 0.25,
    "clarity": 0.15,
    "accuracy": 0.15,
}

SEVERITY_POINTS: dict[str, int] = {"high": 30, "medium": 15, "low": 5}


@dataclass(frozen=True)
class ScoreResult:
    relevance: int
    completeness: int
    risk: int
    clarity: int
    accuracy: int
    overall: int
    risk_level: RiskLevel


def round_half_up(value: float) -> int:
    # built-in round() is banker's rounding; 2.5 must become 3
    return int(math.floor(value + 0.5))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def insight_severity(insight: Insight) -> str:
    """Explicit severity wins; otherwise bucket by confidence."""
    if insight.severity:
        return insight.severity
    if insight.confidence > 0.8:
        return "high"
    if insight.confidence > 0.5:
        return "medium"
    return "low"


def relevance_score(insights: Sequence[Insight], fields: Sequence[ExtractedField]) -> int:
    return min(100, 10 * len(insights) + 5 * len(fields))


def completeness_score(insights: Sequence[Insight]) -> int:
    categories = {insight.category for insight in insights}
    return min(100, 20 * len(categories))


def risk_score(insights: Sequence[Insight]) -> int:
    total = sum(
        SEVERITY_POINTS[insight_severity(insight)]
        for insight in insights
        if insight.category == "risk"
    )
    return min(100, total)


def clarity_score(questions: Sequence[Question]) -> int:
    return max(0, 100 - 10 * len(questions))


def accuracy_score(insights: Sequence[Insight], fields: Sequence[ExtractedField]) -> int:
    avg_insight = _mean([i.confidence for i in insights])
    avg_field = _mean([f.confidence for f in fields])
    return min(100, round_half_up(round(50 * (avg_insight + avg_field), 6)))


def overall_score(
    relevance: int, completeness: int, risk: int, clarity: int, accuracy: int
) -> int:
    weighted = (
        WEIGHTS["relevance"] * relevance
        + WEIGHTS["completeness"] * completeness
        + WEIGHTS["risk"] * risk
        + WEIGHTS["clarity"] * clarity
        + WEIGHTS["accuracy"] * accuracy
    )
    # Float noise (35.7499999...) must not flip the half-up rounding
    return round_half_up(round(weighted, 6))


def determine_risk_level(risk: int) -> RiskLevel:
    if risk < 30:
        return "low"
    if risk < 70:
        return "medium"
    return "high"


def score_analysis(analysis: StructuredAnalysis) -> ScoreResult:
    insights = analysis.insights
    fields = analysis.extracted_fields

    relevance = relevance_score(insights, fields)
    completeness = completeness_score(insights)
    risk = risk_score(insights)
    clarity = clarity_score(analysis.questions)
    accuracy = accuracy_score(insights, fields)

    return ScoreResult(
        relevance=relevance,
        completeness=completeness,
        risk=risk,
        clarity=clarity,
        accuracy=accuracy,
        overall=overall_score(relevance, completeness, risk, clarity, accuracy),
        risk_level=determine_risk_level(risk),
    )
