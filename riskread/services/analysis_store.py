"""In-memory analysis repository.

Not a durable database: records live as long as the process, and terminal
records purge themselves ``ttl_seconds`` after reaching ``completed`` or
``failed``. All mutation is whole-value replace-on-key, which is safe on a
single event loop.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from ..models.analysis import TERMINAL_STATUSES, Analysis, AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpiryScheduler(Protocol):
    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> None: ...

    def cancel(self, key: str) -> bool: ...


class LoopExpiryScheduler:
    """Keyed one-shot timers on the running asyncio loop.

    Scheduling a key that already has a timer cancels the old one first, so a
    key never has two live timers.
    """

    def __init__(self) -> None:
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()

        def _fire() -> None:
            self._handles.pop(key, None)
            callback()

        self._handles[key] = loop.call_later(delay, _fire)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def pending(self) -> list[str]:
        return list(self._handles)


class AnalysisStore:
    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        scheduler: ExpiryScheduler | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.scheduler = scheduler or LoopExpiryScheduler()
        self.clock = clock
        self._analyses: dict[str, Analysis] = {}
        self._results: dict[str, AnalysisResult] = {}  # keyed by analysis_id
        self._order: dict[str, int] = {}
        self._seq = itertools.count()
        self._expiry_listeners: list[Callable[[str], None]] = []

    # ------------------------------------------------------------------
    # Analyses
    # ------------------------------------------------------------------

    def create(
        self,
        *,
        file_name: str,
        file_type: str,
        file_size: int,
        file_url: str,
        user_id: str = "anonymous",
    ) -> Analysis:
        now = self.clock()
        analysis = Analysis(
            user_id=user_id,
            file_name=file_name,
            file_type=file_type,
            file_size=file_size,
            file_url=file_url,
            created_at=now,
            updated_at=now,
        )
        self._analyses[analysis.id] = analysis
        self._order[analysis.id] = next(self._seq)
        return analysis

    def get(self, analysis_id: str) -> Analysis | None:
        return self._analyses.get(analysis_id)

    def update(self, analysis_id: str, **fields: Any) -> Analysis | None:
        """Merge ``fields`` into the record and stamp ``updated_at``.

        Score and tier are cleared on any status other than ``completed``.
        Entering a terminal status (re)arms the expiry timer; leaving one
        disarms it.
        """
        analysis = self._analyses.get(analysis_id)
        if analysis is None:
            return None

        fields.pop("id", None)
        fields.pop("created_at", None)
        status = fields.get("status", analysis.status)
        if status != "completed":
            fields["overall_score"] = None
            fields["risk_level"] = None
        fields["updated_at"] = self.clock()

        updated = Analysis.model_validate({**analysis.model_dump(), **fields})
        self._analyses[analysis_id] = updated

        if updated.status in TERMINAL_STATUSES:
            self._schedule_expiry(analysis_id)
        else:
            self.scheduler.cancel(analysis_id)
        return updated

    def delete(self, analysis_id: str) -> bool:
        self.scheduler.cancel(analysis_id)
        self._results.pop(analysis_id, None)
        self._order.pop(analysis_id, None)
        return self._analyses.pop(analysis_id, None) is not None

    def list(
        self,
        status: str | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Analysis], int]:
        items = sorted(
            self._analyses.values(),
            key=lambda a: (a.created_at, self._order.get(a.id, 0)),
            reverse=True,
        )
        if status:
            items = [a for a in items if a.status == status]
        total = len(items)
        return items[offset:offset + limit], total

    def __len__(self) -> int:
        return len(self._analyses)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def create_result(self, analysis_id: str, **fields: Any) -> AnalysisResult:
        result = AnalysisResult(analysis_id=analysis_id, created_at=self.clock(), **fields)
        self._results[analysis_id] = result
        return result

    def get_result(self, analysis_id: str) -> AnalysisResult | None:
        return self._results.get(analysis_id)

    def delete_result(self, analysis_id: str) -> bool:
        return self._results.pop(analysis_id, None) is not None

    def get_with_result(
        self, analysis_id: str
    ) -> tuple[Analysis, AnalysisResult | None] | None:
        analysis = self._analyses.get(analysis_id)
        if analysis is None:
            return None
        return analysis, self._results.get(analysis_id)

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def on_expire(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(analysis_id)`` after a record auto-expires."""
        self._expiry_listeners.append(listener)

    def _schedule_expiry(self, analysis_id: str) -> None:
        self.scheduler.schedule(
            analysis_id, self.ttl_seconds, lambda: self._expire(analysis_id)
        )

    def _expire(self, analysis_id: str) -> None:
        self._analyses.pop(analysis_id, None)
        self._results.pop(analysis_id, None)
        self._order.pop(analysis_id, None)
        logger.info("Auto-expired analysis from memory", extra={"analysis_id": analysis_id})
        for listener in self._expiry_listeners:
            listener(analysis_id)
