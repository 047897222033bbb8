from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .findings import ExtractedField, Highlight, Insight, Question, Recommendation

AnalysisStatus = Literal["pending", "processing", "completed", "failed"]
RiskLevel = Literal["low", "medium", "high"]
FileType = Literal["pdf", "docx", "xlsx", "txt"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


def new_id() -> str:
    return str(uuid.uuid4())


class Analysis(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str = "anonymous"
    file_name: str
    file_type: FileType
    file_size: int
    file_url: str
    status: AnalysisStatus = "pending"
    overall_score: int | None = None
    risk_level: RiskLevel | None = None
    processing_started_at: datetime | None = None
    processing_completed_at: datetime | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class AnalysisResult(BaseModel):
    id: str = Field(default_factory=new_id)
    analysis_id: str
    relevance_score: int
    completeness_score: int
    risk_score: int
    clarity_score: int
    accuracy_score: int
    insights: list[Insight] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    extracted_fields: list[ExtractedField] = Field(default_factory=list)
    highlights: list[Highlight] = Field(default_factory=list)
    questions: list[Question] = Field(default_factory=list)
    raw_ai_response: dict[str, Any] | None = None
    created_at: datetime
