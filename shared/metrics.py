"""Metric helpers shared by the agent and the collector."""

from __future__ import annotations

import math
import re
from collections.abc import Iterable

from .errors import MetricParseError
from .schemas import (
    INT64_MAX,
    INT64_MIN,
    CounterMetric,
    GaugeMetric,
    MetricCollection,
    MetricType,
)

_INTEGER = re.compile(r"[+-]?[0-9]+")


def wrap_int64(value: int) -> int:
    """Fold ``value`` into the signed 64-bit range with two's complement wrap."""
    return (value - INT64_MIN) % 2**64 + INT64_MIN


def parse_metric(mtype: str, name: str, raw: str) -> GaugeMetric | CounterMetric:
    """Build a metric from the text segments of a ``/update/{type}/{name}/{value}`` path."""
    if not name:
        raise MetricParseError("Metric name is empty", details={"type": mtype})
    if mtype == MetricType.COUNTER:
        if not _INTEGER.fullmatch(raw):
            raise MetricParseError(
                f"Counter value {raw!r} is not an integer",
                details={"type": mtype, "id": name},
            )
        delta = int(raw)
        if not INT64_MIN <= delta <= INT64_MAX:
            raise MetricParseError(
                f"Counter value {raw!r} does not fit in 64 bits",
                details={"type": mtype, "id": name},
            )
        return CounterMetric(id=name, delta=delta)
    if mtype == MetricType.GAUGE:
        try:
            value = float(raw)
        except ValueError as exc:
            raise MetricParseError(
                f"Gauge value {raw!r} is not a number",
                details={"type": mtype, "id": name},
            ) from exc
        if not math.isfinite(value):
            raise MetricParseError(
                f"Gauge value {raw!r} is not finite",
                details={"type": mtype, "id": name},
            )
        return GaugeMetric(id=name, value=value)
    raise MetricParseError(f"Unknown metric type {mtype!r}", details={"type": mtype})


def metric_value(metric: GaugeMetric | CounterMetric) -> float | int:
    if isinstance(metric, CounterMetric):
        return metric.delta
    return metric.value


def group_metrics(metrics: Iterable[GaugeMetric | CounterMetric]) -> MetricCollection:
    """Arrange metrics into a type -> id -> metric collection; later entries win."""
    collection: MetricCollection = {}
    for metric in metrics:
        collection.setdefault(metric.type, {})[metric.id] = metric
    return collection


def copy_collection(collection: MetricCollection) -> MetricCollection:
    # metrics are frozen, only the mappings need copying
    return {mtype: dict(bucket) for mtype, bucket in collection.items()}
