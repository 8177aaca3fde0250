"""Client utility for reporting metric batches to the collector service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import httpx

from .schemas import CounterMetric, GaugeMetric, metric_list_adapter
from .signing import SIGNATURE_HEADER, compress, sign_body

logger = logging.getLogger(__name__)


def _is_transient(exc: httpx.HTTPError) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


@dataclass(slots=True)
class CollectorClient:
    """Lightweight HTTP client for the collector's batch endpoint."""

    base_url: str
    key: str = ""
    timeout: float = 60.0
    retry_delays: tuple[float, ...] = (1.0, 3.0, 5.0)

    async def send_batch(
        self,
        http_client: httpx.AsyncClient,
        metrics: list[GaugeMetric | CounterMetric],
    ) -> None:
        """POST ``metrics`` gzip-compressed to ``/updates/``, retrying transient failures."""
        body = compress(metric_list_adapter.dump_json(metrics))
        headers = {"Content-Type": "application/json", "Content-Encoding": "gzip"}
        if self.key:
            headers[SIGNATURE_HEADER] = sign_body(self.key, body)

        url = f"{self.base_url.rstrip('/')}/updates/"
        for attempt, delay in enumerate((*self.retry_delays, None), start=1):
            try:
                response = await http_client.post(
                    url, content=body, headers=headers, timeout=self.timeout
                )
                response.raise_for_status()
                logger.info("Sent %d metrics on attempt %d", len(metrics), attempt)
                return
            except httpx.HTTPError as exc:  # noqa: PERF203 - explicit retry loop
                if delay is None or not _is_transient(exc):
                    raise
                logger.warning(
                    "Report attempt %d failed: %s; retrying in %.1fs", attempt, exc, delay
                )
                await asyncio.sleep(delay)


def build_collector_client(
    address: str, key: str = "", retry_delays: tuple[float, ...] = (1.0, 3.0, 5.0)
) -> CollectorClient:
    base_url = address if "://" in address else f"http://{address}"
    return CollectorClient(base_url=base_url, key=key, retry_delays=retry_delays)
