from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

InsightCategory = Literal["risk", "strength", "weakness", "opportunity"]
Severity = Literal["high", "medium", "low"]
Priority = Literal["high", "medium", "low"]
RecommendationCategory = Literal["legal", "financial", "operational", "compliance"]
HighlightCategory = Literal["important", "risky", "unclear"]
QuestionPriority = Literal["critical", "important", "optional"]
QuestionCategory = Literal["clarity", "completeness", "accuracy", "compliance"]


def normalize_confidence(value: Any) -> float:
    """Bring a confidence onto the canonical 0-1 scale.

    Producers report either 0-1 or 0-100; anything above 1 is read as a
    percentage.
    """
    if value is None:
        return 0.0
    number = float(value)
    if number > 1:
        number = number / 100
    return min(1.0, max(0.0, number))


_ENUM_KEYS = ("category", "severity", "priority")


class _Finding(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _lowercase_tags(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in _ENUM_KEYS:
                if isinstance(data.get(key), str):
                    data[key] = data[key].strip().lower()
        return data


class Insight(_Finding):
    id: int
    text: str
    category: InsightCategory
    severity: Severity | None = None
    confidence: float = 0.0

    @model_validator(mode="before")
    @classmethod
    def _merge_title(cls, data: Any) -> Any:
        # Some answers split the text into title/description
        if isinstance(data, dict) and not data.get("text"):
            parts = [data.get("title"), data.get("description")]
            joined = ": ".join(str(p) for p in parts if p)
            if joined:
                data = {**data, "text": joined}
        return data

    @field_validator("confidence", mode="before")
    @classmethod
    def _scale(cls, value: Any) -> float:
        return normalize_confidence(value)


class Recommendation(_Finding):
    id: int
    text: str
    priority: Priority
    category: RecommendationCategory


class ExtractedField(_Finding):
    name: str
    value: str
    confidence: float = 0.0
    ambiguity_notes: str | None = None
    page_number: int | None = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _scale(cls, value: Any) -> float:
        return normalize_confidence(value)


class Highlight(_Finding):
    text: str
    reason: str
    category: HighlightCategory
    page_number: int | None = None
    start_position: int | None = None
    end_position: int | None = None


class Question(_Finding):
    text: str
    priority: QuestionPriority
    category: QuestionCategory
    suggested_action: str | None = None


class StructuredAnalysis(_Finding):
    """Decoded full-assessment output of the model."""

    insights: list[Insight] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    extracted_fields: list[ExtractedField] = Field(default_factory=list)
    highlights: list[Highlight] = Field(default_factory=list)
    questions: list[Question] = Field(default_factory=list)

    @field_validator(
        "insights", "recommendations", "extracted_fields", "highlights", "questions",
        mode="before",
    )
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class QuickInsights(_Finding):
    insights: list[Insight] = Field(default_factory=list)


class FieldExtraction(_Finding):
    extracted_fields: list[ExtractedField] = Field(default_factory=list)


class ClarificationQuestions(_Finding):
    questions: list[Question] = Field(default_factory=list)
