from __future__ import annotations

import asyncio
import io
import logging
import re
from dataclasses import dataclass
from itertools import islice
from typing import TYPE_CHECKING

import PyPDF2  # type: ignore
import docx  # type: ignore
import pandas as pd
from PyPDF2.errors import FileNotDecryptedError, PdfReadError  # type: ignore

from ..exceptions import ExtractionError, ExtractionErrorKind
from ..models.document import DocumentMetadata, ExtractedDocument

if TYPE_CHECKING:
    from .storage import FileStorage

logger = logging.getLogger(__name__)

DEFAULT_TEXT_CHAR_LIMIT = 50_000

FILE_TYPE_ALIASES: dict[str, str] = {
    "pdf": "pdf",
    "application/pdf": "pdf",
    "docx": "docx",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "xlsx": "xlsx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "txt": "txt",
    "text/plain": "txt",
}

PDF_MAGIC = b"%PDF"
# Encrypted OOXML files are wrapped in an OLE compound document
OLE_MAGIC = b"\xd0\xcf\x11\xe0"


def normalize_file_type(declared_type: str | None) -> str:
    """Map an extension or MIME string to pdf/docx/xlsx/txt, else ``generic``."""
    key = (declared_type or "").strip().lower().lstrip(".")
    return FILE_TYPE_ALIASES.get(key, "generic")


def is_supported_file_type(declared_type: str | None) -> bool:
    return normalize_file_type(declared_type) != "generic"


# ---------------------------------------------------------------------------
# Metadata helpers
# ---------------------------------------------------------------------------

_STOP_WORDS: dict[str, frozenset[str]] = {
    "en": frozenset({"the", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"}),
    "es": frozenset({"el", "la", "de", "que", "y", "a", "en", "un", "es", "se", "no", "te"}),
    "fr": frozenset({"le", "la", "de", "et", "un", "une", "des", "du", "que", "qui", "dans", "sur"}),
}


def count_words(text: str) -> int:
    return len(text.split())


def detect_language(text: str, sample_size: int = 100) -> str:
    """Guess en/es/fr from stop-word hits in the first tokens; ties go to en."""
    sample = text.lower().split()[:sample_size]
    counts = {lang: sum(1 for word in sample if word in words) for lang, words in _STOP_WORDS.items()}
    for lang in ("en", "es", "fr"):
        others = [n for other, n in counts.items() if other != lang]
        if all(counts[lang] > n for n in others):
            return lang
    return "en"


def _cap(text: str, limit: int) -> tuple[str, bool]:
    if len(text) > limit:
        return text[:limit], True
    return text, False


def _require_text(text: str, file_type: str) -> None:
    if len(text.strip()) < 3:
        raise ExtractionError(
            ExtractionErrorKind.NO_EXTRACTABLE_TEXT,
            f"No text content found in {file_type.upper()} document. It may contain only images.",
        )


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PdfParseConfig:
    name: str
    strict: bool = False
    max_pages: int | None = None
    orientations: tuple[int, ...] = (0, 90, 180, 270)


PDF_PARSE_CONFIGS: tuple[PdfParseConfig, ...] = (
    PdfParseConfig("full-strict", strict=True),
    PdfParseConfig("full-lenient"),
    PdfParseConfig("first-10-pages", max_pages=10),
    PdfParseConfig("default", orientations=(0,)),
)

_WHITESPACE = re.compile(r"\s+")
# must run before whitespace is collapsed
_PAGE_NUMBER_LINE = re.compile(r"^[ \t]*\d+[ \t]*\r?$", re.MULTILINE)
_PDF_CLEANUP: list[tuple[re.Pattern[str], str]] = [
    # page numbers and running headers/footers
    (re.compile(r"\bPage \d+ of \d+\b", re.IGNORECASE), ""),
    # residual object syntax
    (re.compile(r"/\w+\s+\d+\s+\d+\s+R\b"), ""),
    (re.compile(r"/\w+\s+\d+\s+R\b"), ""),
    (re.compile(r"<<[^>]*>>"), ""),
    (re.compile(r"/\w+\s+\[[^\]]*\]"), ""),
    (re.compile(r"\bstream\b.*?\bendstream\b", re.DOTALL), ""),
    (re.compile(r"\\u[0-9a-fA-F]{4}"), ""),
    (re.compile(r"[^\x09\x0a\x0d\x20-\x7e]"), ""),
    (re.compile(r"[^\w\s.,!?;:()\-'\"]"), ""),
]


def clean_pdf_text(text: str) -> str:
    if not text:
        return ""
    cleaned = _WHITESPACE.sub(" ", _PAGE_NUMBER_LINE.sub("", text))
    for pattern, replacement in _PDF_CLEANUP:
        cleaned = pattern.sub(replacement, cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


def _open_pdf(content: bytes, strict: bool) -> PyPDF2.PdfReader:
    reader = PyPDF2.PdfReader(io.BytesIO(content), strict=strict)
    if reader.is_encrypted:
        try:
            unlocked = reader.decrypt("")
        except Exception as exc:  # noqa: BLE001
            raise ExtractionError(
                ExtractionErrorKind.PASSWORD_PROTECTED, f"PDF is password-protected: {exc}"
            ) from exc
        if not unlocked:
            raise ExtractionError(
                ExtractionErrorKind.PASSWORD_PROTECTED, "PDF is password-protected"
            )
    return reader


def _parse_pdf(content: bytes, config: PdfParseConfig) -> tuple[str, PyPDF2.PdfReader]:
    reader = _open_pdf(content, config.strict)
    pages = reader.pages
    if config.max_pages is not None:
        pages = islice(pages, config.max_pages)
    text_content: list[str] = []
    for page in pages:
        text_content.append(page.extract_text(orientations=config.orientations) or "")
    return "\n".join(text_content), reader


def _pdf_info(reader: PyPDF2.PdfReader) -> dict[str, str | None]:
    try:
        info = reader.metadata
    except Exception:  # noqa: BLE001
        info = None
    if not info:
        return {"title": None, "author": None, "subject": None}
    return {"title": info.title, "author": info.author, "subject": info.subject}


def extract_text_from_pdf(content: bytes) -> ExtractedDocument:
    if not content or not content.startswith(PDF_MAGIC):
        raise ExtractionError(
            ExtractionErrorKind.INVALID_FORMAT, "Invalid PDF file - missing PDF header"
        )

    attempted: list[str] = []
    last_error: Exception | None = None
    raw_text = ""
    reader: PyPDF2.PdfReader | None = None

    for config in PDF_PARSE_CONFIGS:
        attempted.append(config.name)
        try:
            raw_text, reader = _parse_pdf(content, config)
        except ExtractionError:
            raise
        except FileNotDecryptedError as exc:
            raise ExtractionError(
                ExtractionErrorKind.PASSWORD_PROTECTED, "PDF is password-protected"
            ) from exc
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            logger.debug("PDF config failed", extra={"config": config.name, "error": str(exc)})
            continue
        if raw_text.strip():
            logger.debug("PDF config succeeded", extra={"config": config.name})
            break
        logger.debug("PDF config returned empty text", extra={"config": config.name})

    if reader is None:
        message = f"PDF parsing failed with all configurations: {last_error}"
        if isinstance(last_error, PdfReadError):
            message = f"PDF is corrupted or unreadable: {last_error}"
        raise ExtractionError(
            ExtractionErrorKind.INVALID_FORMAT,
            message + ". Please convert the document to DOCX or TXT.",
        )

    text = clean_pdf_text(raw_text)
    _require_text(text, "pdf")

    return ExtractedDocument(
        text=text,
        metadata=DocumentMetadata(
            word_count=count_words(text),
            page_count=len(reader.pages) or 1,
            language=detect_language(text),
            file_type="pdf",
            extraction_method="pypdf2",
            attempted_configs=attempted,
            **_pdf_info(reader),
        ),
    )


# ---------------------------------------------------------------------------
# DOCX / XLSX
# ---------------------------------------------------------------------------


def _reject_encrypted_container(content: bytes, file_type: str) -> None:
    if content.startswith(OLE_MAGIC):
        raise ExtractionError(
            ExtractionErrorKind.PASSWORD_PROTECTED,
            f"{file_type.upper()} document is encrypted or password-protected",
        )


def extract_text_from_docx(content: bytes) -> ExtractedDocument:
    _reject_encrypted_container(content, "docx")
    try:
        doc = docx.Document(io.BytesIO(content))
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(
            ExtractionErrorKind.INVALID_FORMAT, f"Error processing DOCX file: {exc}"
        ) from exc

    text_content: list[str] = []
    page_breaks = 0
    for paragraph in doc.paragraphs:
        if paragraph._element.xpath('.//w:br[@w:type="page"]'):
            page_breaks += 1
        if paragraph.text.strip():
            text_content.append(paragraph.text)
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                text_content.append(" | ".join(cells))

    text = "\n".join(text_content)
    _require_text(text, "docx")
    props = doc.core_properties
    return ExtractedDocument(
        text=text,
        metadata=DocumentMetadata(
            word_count=count_words(text),
            page_count=page_breaks + 1,
            language=detect_language(text),
            title=props.title or None,
            author=props.author or None,
            subject=props.subject or None,
            file_type="docx",
            extraction_method="python-docx",
        ),
    )


def extract_text_from_xlsx(content: bytes, limit: int = DEFAULT_TEXT_CHAR_LIMIT) -> ExtractedDocument:
    _reject_encrypted_container(content, "xlsx")
    try:
        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None, header=None, engine="openpyxl")
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(
            ExtractionErrorKind.INVALID_FORMAT, f"Error processing XLSX file: {exc}"
        ) from exc

    parts: list[str] = []
    for name, frame in sheets.items():
        frame = frame.dropna(how="all").dropna(axis=1, how="all")
        if frame.empty:
            continue
        parts.append(f"=== SHEET {name} ===\n" + frame.to_csv(index=False, header=False))

    text, truncated = _cap("\n".join(parts), limit)
    _require_text(text, "xlsx")
    return ExtractedDocument(
        text=text,
        metadata=DocumentMetadata(
            word_count=count_words(text),
            page_count=len(sheets),
            language=detect_language(text),
            file_type="xlsx",
            extraction_method="pandas",
            truncated=truncated,
        ),
    )


# ---------------------------------------------------------------------------
# TXT / generic
# ---------------------------------------------------------------------------


def decode_text(content: bytes) -> str:
    if content.startswith((b"\xff\xfe", b"\xfe\xff")):
        return content.decode("utf-16", errors="ignore")
    for enc in ["utf-8", "cp1251", "latin-1"]:
        try:
            return content.decode(enc)
        except UnicodeDecodeError:
            continue
    return content.decode("utf-8", errors="ignore")


def extract_text_from_txt(
    content: bytes, limit: int = DEFAULT_TEXT_CHAR_LIMIT, file_type: str = "txt"
) -> ExtractedDocument:
    text, truncated = _cap(decode_text(content), limit)
    _require_text(text, file_type)
    return ExtractedDocument(
        text=text,
        metadata=DocumentMetadata(
            word_count=count_words(text),
            language=detect_language(text),
            file_type=file_type,
            extraction_method="direct-text" if file_type == "txt" else "fallback-text",
            truncated=truncated,
        ),
    )


def extract_from_bytes(
    content: bytes, declared_type: str, limit: int = DEFAULT_TEXT_CHAR_LIMIT
) -> ExtractedDocument:
    """Dispatch purely on the declared type; there is no cross-format fallback."""
    file_type = normalize_file_type(declared_type)
    if file_type == "pdf":
        return extract_text_from_pdf(content)
    if file_type == "docx":
        return extract_text_from_docx(content)
    if file_type == "xlsx":
        return extract_text_from_xlsx(content, limit)
    if file_type == "txt":
        return extract_text_from_txt(content, limit)
    return extract_text_from_txt(content, limit, file_type=(declared_type or "unknown").lower())


class DocumentExtractor:
    """Fetches a stored document and turns it into plain text."""

    def __init__(self, storage: FileStorage, text_char_limit: int = DEFAULT_TEXT_CHAR_LIMIT):
        self.storage = storage
        self.text_char_limit = text_char_limit

    async def extract(self, location: str, declared_type: str) -> ExtractedDocument:
        content = await self.storage.read(location)
        logger.info(
            "Extracting document",
            extra={"location": location, "file_type": declared_type, "size": len(content)},
        )
        # parsing is CPU-bound
        return await asyncio.to_thread(
            extract_from_bytes, content, declared_type, self.text_char_limit
        )
