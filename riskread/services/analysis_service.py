from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..exceptions import ExtractionError, GatewayError, NotFoundError
from ..models.analysis import Analysis, AnalysisResult
from ..models.document import ExtractedDocument
from ..workers.jobs import JobRunner
from .ai_gateway import AIGateway
from .analysis_store import AnalysisStore
from .document_processing import DocumentExtractor, normalize_file_type
from .scoring import score_analysis
from .storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisStatusView:
    status: str
    overall_score: int | None
    risk_level: str | None
    processing_duration_seconds: int | None
    error: str | None
    created_at: datetime
    updated_at: datetime


class _Superseded(Exception):
    """A newer run owns this analysis; stop without writing."""


class AnalysisService:
    """Drives one analysis through pending -> processing -> completed|failed.

    Each start or reprocess issues a fresh run token; only the run holding the
    current token may write to the record, so overlapping runs for the same id
    cannot interleave their terminal writes.
    """

    def __init__(
        self,
        store: AnalysisStore,
        extractor: DocumentExtractor,
        gateway: AIGateway,
        storage: FileStorage,
        runner: JobRunner | None = None,
        extraction_timeout: float | None = 60,
        ai_timeout: float | None = 120,
    ):
        self.store = store
        self.extractor = extractor
        self.gateway = gateway
        self.storage = storage
        self.runner = runner or JobRunner()
        self.extraction_timeout = extraction_timeout
        self.ai_timeout = ai_timeout
        self._tokens: dict[str, int] = {}
        self._token_seq = itertools.count(1)
        store.on_expire(self._forget)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_analysis(
        self,
        *,
        file_url: str,
        file_name: str,
        file_type: str,
        file_size: int,
        user_id: str = "anonymous",
    ) -> Analysis:
        self.storage.check_location(file_url)
        analysis = self.store.create(
            file_name=file_name,
            file_type=normalize_file_type(file_type),
            file_size=file_size,
            file_url=file_url,
            user_id=user_id,
        )
        logger.info("Analysis created", extra={"analysis_id": analysis.id, "file_name": file_name})
        self._start(analysis.id)
        return analysis

    def reprocess(self, analysis_id: str) -> Analysis:
        if self.store.get(analysis_id) is None:
            raise NotFoundError(analysis_id)
        # a failed or re-running analysis must not expose an old result
        self.store.delete_result(analysis_id)
        analysis = self.store.update(
            analysis_id,
            status="pending",
            error=None,
            processing_started_at=None,
            processing_completed_at=None,
        )
        logger.info(f"Reprocessing analysis {analysis_id}")
        self._start(analysis_id)
        return analysis  # type: ignore[return-value]

    def delete(self, analysis_id: str) -> None:
        self._forget(analysis_id)
        if not self.store.delete(analysis_id):
            raise NotFoundError(analysis_id)
        logger.info(f"Analysis {analysis_id} deleted")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, analysis_id: str) -> tuple[Analysis, AnalysisResult | None]:
        found = self.store.get_with_result(analysis_id)
        if found is None:
            raise NotFoundError(analysis_id)
        return found

    def get_result(self, analysis_id: str) -> AnalysisResult:
        result = self.store.get_result(analysis_id)
        if result is None:
            raise NotFoundError(analysis_id)
        return result

    def status(self, analysis_id: str) -> AnalysisStatusView:
        analysis = self.store.get(analysis_id)
        if analysis is None:
            raise NotFoundError(analysis_id)
        duration = None
        if analysis.is_terminal:
            start = analysis.processing_started_at or analysis.created_at
            end = analysis.processing_completed_at or analysis.updated_at
            duration = max(0, round((end - start).total_seconds()))
        return AnalysisStatusView(
            status=analysis.status,
            overall_score=analysis.overall_score,
            risk_level=analysis.risk_level,
            processing_duration_seconds=duration,
            error=analysis.error,
            created_at=analysis.created_at,
            updated_at=analysis.updated_at,
        )

    def list(
        self, status: str | None = None, limit: int = 10, offset: int = 0
    ) -> tuple[list[Analysis], int]:
        return self.store.list(status=status, limit=limit, offset=offset)

    async def wait(self, analysis_id: str) -> None:
        await self.runner.wait(analysis_id)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _start(self, analysis_id: str) -> None:
        token = next(self._token_seq)
        self._tokens[analysis_id] = token
        self.runner.submit(analysis_id, lambda: self.process(analysis_id, token))

    def _forget(self, analysis_id: str) -> None:
        self._tokens.pop(analysis_id, None)

    def _owns(self, analysis_id: str, token: int) -> bool:
        return self._tokens.get(analysis_id) == token

    def _write(self, analysis_id: str, token: int, **fields: Any) -> Analysis:
        if not self._owns(analysis_id, token):
            raise _Superseded()
        updated = self.store.update(analysis_id, **fields)
        if updated is None:
            # deleted or expired mid-run
            raise _Superseded()
        return updated

    async def _stage(self, awaitable: Any, timeout: float | None, stage: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(f"{stage} timed out after {timeout}s") from exc

    async def process(self, analysis_id: str, token: int) -> None:
        ctx = {"analysis_id": analysis_id, "run": token}
        file_url: str | None = None
        try:
            analysis = self._write(
                analysis_id, token, status="processing", processing_started_at=self.store.clock()
            )
            file_url = analysis.file_url
            logger.info("Running analysis", extra={**ctx, "file_type": analysis.file_type})

            document: ExtractedDocument = await self._stage(
                self.extractor.extract(analysis.file_url, analysis.file_type),
                self.extraction_timeout,
                "extraction",
            )
            logger.info(
                "Document extracted",
                extra={
                    **ctx,
                    "chars": len(document.text),
                    "word_count": document.metadata.word_count,
                    "page_count": document.metadata.page_count,
                    "language": document.metadata.language,
                    "attempted_configs": document.metadata.attempted_configs,
                },
            )

            structured, raw = await self._stage(
                self.gateway.assess(document.text, analysis.file_name),
                self.ai_timeout,
                "ai_assessment",
            )
            scores = score_analysis(structured)

            if not self._owns(analysis_id, token):
                raise _Superseded()
            self.store.create_result(
                analysis_id,
                relevance_score=scores.relevance,
                completeness_score=scores.completeness,
                risk_score=scores.risk,
                clarity_score=scores.clarity,
                accuracy_score=scores.accuracy,
                insights=structured.insights,
                recommendations=structured.recommendations,
                extracted_fields=structured.extracted_fields,
                highlights=structured.highlights,
                questions=structured.questions,
                raw_ai_response=raw,
            )
            self._write(
                analysis_id,
                token,
                status="completed",
                overall_score=scores.overall,
                risk_level=scores.risk_level,
                processing_completed_at=self.store.clock(),
            )
            logger.info(
                f"Analysis {analysis_id} completed",
                extra={**ctx, "overall_score": scores.overall, "risk_level": scores.risk_level},
            )
        except _Superseded:
            logger.info(f"Run {token} for analysis {analysis_id} superseded", extra=ctx)
            return
        except (ExtractionError, GatewayError, TimeoutError) as exc:
            logger.warning(f"Analysis {analysis_id} failed: {exc}", extra=ctx)
            self._fail(analysis_id, token, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"Analysis {analysis_id} failed unexpectedly", extra=ctx)
            self._fail(analysis_id, token, f"Unexpected error: {exc}")
        finally:
            if file_url and self._is_final(analysis_id, token):
                await self.storage.delete(file_url)

    def _fail(self, analysis_id: str, token: int, message: str) -> None:
        try:
            self._write(
                analysis_id,
                token,
                status="failed",
                error=message,
                processing_completed_at=self.store.clock(),
            )
        except _Superseded:
            return

    def _is_final(self, analysis_id: str, token: int) -> bool:
        # the file belongs to whichever run finishes last; a superseded run leaves it alone
        if analysis_id not in self._tokens:
            return True
        return self._owns(analysis_id, token)
