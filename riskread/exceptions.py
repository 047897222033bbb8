"""Exception taxonomy for the analysis pipeline."""

from __future__ import annotations

from enum import Enum


class RiskReadError(Exception):
    """Base exception for all application errors."""


class InvalidRequestError(RiskReadError):
    """Raised when a request is rejected before any processing starts."""


class NotFoundError(RiskReadError):
    """Raised when an analysis id is unknown."""

    def __init__(self, analysis_id: str):
        super().__init__(f"Analysis not found: {analysis_id}")
        self.analysis_id = analysis_id


class StorageError(RiskReadError):
    """Raised when the file collaborator cannot write or delete a file."""


class ExtractionErrorKind(str, Enum):
    INVALID_FORMAT = "invalid_format"
    PASSWORD_PROTECTED = "password_protected"
    NO_EXTRACTABLE_TEXT = "no_extractable_text"
    FETCH_FAILED = "fetch_failed"


class ExtractionError(RiskReadError):
    """Raised when a document cannot be turned into text.

    Always terminal for the analysis that hit it.
    """

    def __init__(self, kind: ExtractionErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class GatewayErrorKind(str, Enum):
    INVALID_CREDENTIAL = "invalid_credential"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    PARSE_ERROR = "parse_error"
    SCHEMA_VIOLATION = "schema_violation"
    UNKNOWN = "unknown"


class GatewayError(RiskReadError):
    """Raised by the AI gateway for provider failures and unusable output."""

    def __init__(self, kind: GatewayErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
