from __future__ import annotations

from pydantic import BaseModel, Field


class DocumentMetadata(BaseModel):
    word_count: int
    page_count: int | None = None
    language: str = "en"
    title: str | None = None
    author: str | None = None
    subject: str | None = None
    file_type: str
    extraction_method: str
    # Parser configurations tried, in order (PDF only)
    attempted_configs: list[str] = Field(default_factory=list)
    truncated: bool = False


class ExtractedDocument(BaseModel):
    text: str
    metadata: DocumentMetadata
