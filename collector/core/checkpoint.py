"""Periodic snapshot writer for the in-memory backend."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass, field

from shared.errors import MetricsError

from .storage import MetricsStorage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SnapshotScheduler:
    """Calls ``write_to_file`` on the storage every ``interval`` seconds."""

    storage: MetricsStorage
    interval: float
    _task: asyncio.Task | None = field(init=False, default=None)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("Snapshot scheduler started, interval=%ss", self.interval)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.storage.write_to_file()
            except MetricsError:
                logger.exception("Failed to write storage content to file")
