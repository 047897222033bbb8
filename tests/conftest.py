"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import io
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import pytest
from PyPDF2 import PdfWriter

from riskread.config import Settings
from riskread.services.ai_gateway import AIGateway
from riskread.services.analysis_service import AnalysisService
from riskread.services.analysis_store import AnalysisStore
from riskread.services.document_processing import DocumentExtractor
from riskread.services.gemini import GenerationResult
from riskread.services.storage import FileStorage
from riskread.workers.jobs import JobRunner


class FakeGenerator:
    """Stands in for the Gemini client.

    ``responses`` are consumed in order; the last one repeats.
    """

    def __init__(
        self,
        responses: list[str] | None = None,
        chunks: list[str] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = list(responses or [])
        self.chunks = list(chunks or [])
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    async def generate(
        self, prompt: str, temperature: float | None = None, max_output_tokens: int | None = None
    ) -> GenerationResult:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        text = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        return GenerationResult(text=text)

    async def stream(
        self, prompt: str, temperature: float | None = None, max_output_tokens: int | None = None
    ) -> AsyncIterator[str]:
        self.prompts.append(prompt)
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error


class ManualScheduler:
    """Expiry timers that only fire when a test says so."""

    def __init__(self) -> None:
        self.timers: dict[str, tuple[float, Callable[[], None]]] = {}

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> None:
        self.timers[key] = (delay, callback)

    def cancel(self, key: str) -> bool:
        return self.timers.pop(key, None) is not None

    def fire(self, key: str) -> None:
        _, callback = self.timers.pop(key)
        callback()


class StepClock:
    """Each call returns a time one second later than the previous call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


def assessment_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "insights": [
            {
                "id": 1,
                "text": "Uncapped liability for the tenant",
                "category": "risk",
                "severity": "high",
                "confidence": 0.9,
            }
        ],
        "recommendations": [
            {"id": 1, "text": "Negotiate a liability cap", "priority": "high", "category": "legal"}
        ],
        "extracted_fields": [],
        "highlights": [],
        "questions": [],
    }
    payload.update(overrides)
    return payload


def assessment_json(**overrides: Any) -> str:
    return json.dumps(assessment_payload(**overrides))


def build_text_pdf(lines: list[str]) -> bytes:
    """A one-page PDF drawing ``lines`` in Helvetica, with a correct xref table."""
    ops = ["BT", "/F1 12 Tf", "14 TL", "72 720 Td"]
    for line in lines:
        escaped = line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
        ops.append(f"({escaped}) Tj T*")
    ops.append("ET")
    stream = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Resources << /Font << /F1 5 0 R >> >> /Contents 4 0 R >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, 1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\n" % (len(objects) + 1)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_at
    return bytes(out)


def build_blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def storage(tmp_path: Path) -> FileStorage:
    return FileStorage(tmp_path / "uploads")


@pytest.fixture
def store(manual_scheduler: ManualScheduler, step_clock: StepClock) -> AnalysisStore:
    return AnalysisStore(ttl_seconds=300, scheduler=manual_scheduler, clock=step_clock)


@pytest.fixture
def make_service(store: AnalysisStore, storage: FileStorage) -> Callable[..., AnalysisService]:
    """Build an orchestrator wired to the in-memory store and tmp storage."""

    def _make(
        generator: FakeGenerator | None = None,
        extraction_timeout: float | None = 5,
        ai_timeout: float | None = 5,
    ) -> AnalysisService:
        return AnalysisService(
            store=store,
            extractor=DocumentExtractor(storage),
            gateway=AIGateway(generator),
            storage=storage,
            runner=JobRunner(),
            extraction_timeout=extraction_timeout,
            ai_timeout=ai_timeout,
        )

    return _make


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        app_env="test",
        gemini_api_key=None,
        upload_dir=str(tmp_path / "uploads"),
        _env_file=None,
    )
