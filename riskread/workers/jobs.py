from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class JobRunner:
    """Fire-and-forget asyncio jobs keyed by analysis id.

    The request handler never awaits a job; ``wait``/``join`` exist so callers
    that need the outcome (tests, shutdown) can await it deterministically.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, set[asyncio.Task[None]]] = {}

    def submit(self, key: str, job: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(self._run(key, job), name=f"analysis:{key}")
        # keep a strong reference until the task is done
        self._tasks.setdefault(key, set()).add(task)
        task.add_done_callback(lambda t: self._forget(key, t))
        return task

    @staticmethod
    async def _run(key: str, job: Callable[[], Awaitable[None]]) -> None:
        try:
            await job()
        except asyncio.CancelledError:
            logger.info(f"Job for {key} cancelled")
            raise
        except Exception:  # noqa: BLE001
            logger.exception(f"Background processing error for {key}")

    def _forget(self, key: str, task: asyncio.Task[None]) -> None:
        tasks = self._tasks.get(key)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            self._tasks.pop(key, None)

    def is_running(self, key: str) -> bool:
        return bool(self._tasks.get(key))

    async def wait(self, key: str) -> None:
        """Wait until no job for ``key`` is in flight."""
        while tasks := list(self._tasks.get(key, ())):
            await asyncio.gather(*tasks, return_exceptions=True)

    async def join(self) -> None:
        while self._tasks:
            tasks = [t for group in self._tasks.values() for t in group]
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        for group in list(self._tasks.values()):
            for task in group:
                task.cancel()
        await self.join()
