from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from ..models.analysis import Analysis, AnalysisResult
from ..services.document_processing import is_supported_file_type
from ..services.prompt_builder import AnalysisMode


class CreateAnalysisRequest(BaseModel):
    file_url: str = Field(min_length=1)
    file_name: str = Field(min_length=1)
    file_type: str
    file_size: int = Field(gt=0)

    @field_validator("file_type")
    @classmethod
    def _supported_type(cls, value: str) -> str:
        if not is_supported_file_type(value):
            raise ValueError("Unsupported file type. Supported: PDF, DOCX, XLSX, TXT")
        return value


class UpdateAnalysisRequest(BaseModel):
    # Only the reprocess transition is exposed to callers
    status: Literal["pending"]


class AnalysisCreated(BaseModel):
    analysis_id: str
    analysis: Analysis


class AnalysisWithResult(BaseModel):
    analysis: Analysis
    result: AnalysisResult | None = None


class AnalysisListOut(BaseModel):
    analyses: list[Analysis]
    total: int
    limit: int
    offset: int
    has_more: bool


class AnalysisStatusOut(BaseModel):
    status: str
    overall_score: int | None = None
    risk_level: str | None = None
    processing_duration_seconds: int | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


class DeletedOut(BaseModel):
    success: bool = True
    message: str


class UploadOut(BaseModel):
    file_url: str
    file_name: str
    original_name: str
    file_size: int
    file_type: str


class DeleteUploadRequest(BaseModel):
    file_name: str = Field(min_length=1)


class AIAnalyzeOptions(BaseModel):
    fields: list[str] | None = None


class AIAnalyzeRequest(BaseModel):
    document_text: str = Field(min_length=1)
    analysis_type: AnalysisMode = AnalysisMode.DETAILED
    options: AIAnalyzeOptions = Field(default_factory=AIAnalyzeOptions)


class AIAnalyzeOut(BaseModel):
    success: bool = True
    analysis_type: AnalysisMode
    result: dict[str, Any]


class StreamRequest(BaseModel):
    prompt: str = Field(min_length=1)


class HealthOut(BaseModel):
    status: str = "ok"
    gemini_configured: bool
