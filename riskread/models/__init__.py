from .analysis import TERMINAL_STATUSES, Analysis, AnalysisResult
from .document import DocumentMetadata, ExtractedDocument
from .findings import (
    ClarificationQuestions,
    ExtractedField,
    FieldExtraction,
    Highlight,
    Insight,
    Question,
    QuickInsights,
    Recommendation,
    StructuredAnalysis,
)

__all__ = [
    "TERMINAL_STATUSES",
    "Analysis",
    "AnalysisResult",
    "DocumentMetadata",
    "ExtractedDocument",
    "Insight",
    "Recommendation",
    "ExtractedField",
    "Highlight",
    "Question",
    "StructuredAnalysis",
    "QuickInsights",
    "FieldExtraction",
    "ClarificationQuestions",
]
