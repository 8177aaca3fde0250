"""Shared MetricsAgent implementation: poll runtime gauges, report batches."""

from __future__ import annotations

import asyncio
import logging
import random
from contextlib import suppress
from dataclasses import dataclass, field

import httpx

from shared.collector_client import CollectorClient
from shared.schemas import CounterMetric, GaugeMetric

from .config import AgentConfig
from .runtime_stats import RuntimeStats

logger = logging.getLogger(__name__)

POLL_COUNT = "PollCount"
RANDOM_VALUE = "RandomValue"


@dataclass(slots=True)
class MetricsAgent:
    """Handles the poll and report cycles of one agent process.

    ``PollCount`` is reported as a delta: polls are moved out of the pending
    counter when a batch is built and put back if that batch is not delivered.
    """

    config: AgentConfig
    client: CollectorClient
    http_client: httpx.AsyncClient
    stats: RuntimeStats = field(default_factory=RuntimeStats)
    rng: random.Random = field(default_factory=random.Random)
    _gauges: dict[str, GaugeMetric] = field(init=False, default_factory=dict)
    _pending_polls: int = field(init=False, default=0)
    _semaphore: asyncio.Semaphore = field(init=False)
    _tasks: list[asyncio.Task] = field(init=False, default_factory=list)
    _reports: set[asyncio.Task] = field(init=False, default_factory=set)

    def __post_init__(self) -> None:
        self._semaphore = asyncio.Semaphore(self.config.rate_limit)

    async def startup(self) -> None:
        """Begin the poll and report loops."""
        self._tasks = [
            asyncio.create_task(self._poll_loop()),
            asyncio.create_task(self._report_loop()),
        ]
        logger.info(
            "Started collecting metrics: poll=%ss report=%ss collector=%s",
            self.config.poll_interval,
            self.config.report_interval,
            self.client.base_url,
        )

    async def shutdown(self) -> None:
        """Stop the loops and close the HTTP client."""
        for task in (*self._tasks, *self._reports):
            task.cancel()
        for task in (*self._tasks, *self._reports):
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        await self.http_client.aclose()

    def poll_once(self) -> None:
        gauges = self.stats.collect()
        gauges.append(GaugeMetric(id=RANDOM_VALUE, value=self.rng.random()))
        self._gauges = {gauge.id: gauge for gauge in gauges}
        self._pending_polls += 1
        logger.debug("Polled %d gauges, pending polls=%d", len(gauges), self._pending_polls)

    async def report_once(self) -> bool:
        """Send the latest gauges plus pending polls; ``True`` when delivered."""
        polls = self._pending_polls
        batch: list[GaugeMetric | CounterMetric] = list(self._gauges.values())
        if polls:
            batch.append(CounterMetric(id=POLL_COUNT, delta=polls))
        if not batch:
            return False
        self._pending_polls -= polls

        async with self._semaphore:
            try:
                await self.client.send_batch(self.http_client, batch)
            except httpx.HTTPError:
                self._pending_polls += polls
                logger.exception("Send metrics error")
                return False
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval)
            self.poll_once()

    async def _report_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.report_interval)
            task = asyncio.create_task(self.report_once())
            self._reports.add(task)
            task.add_done_callback(self._reports.discard)
