"""Shared data contracts for the metrics agent and collector.

These models are intentionally colocated to guarantee the agent and the
collector agree on payload formats for HTTP requests, snapshot files and
database rows. They double as documentation for the API surface.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


class ErrorCode(str, Enum):
    """Enumerates well-known error categories for HTTP responses."""

    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    STORE_FAILED = "store_failed"
    UNSUPPORTED_OPERATION = "unsupported_operation"
    SIGNATURE_MISMATCH = "signature_mismatch"
    INTERNAL_ERROR = "internal_error"


class ErrorResponse(BaseModel):
    """Consistent error envelope returned by the collector."""

    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None


class MetricType(str, Enum):
    """The two metric kinds understood by the collector."""

    GAUGE = "gauge"
    COUNTER = "counter"


class GaugeMetric(BaseModel):
    """Metric whose value fully replaces any prior value on update."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Metric name, unique per type.")
    type: Literal["gauge"] = "gauge"
    value: float = Field(allow_inf_nan=False, description="Last reported value.")


class CounterMetric(BaseModel):
    """Metric whose value accumulates by addition across updates."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Metric name, unique per type.")
    type: Literal["counter"] = "counter"
    delta: int = Field(
        ge=INT64_MIN, le=INT64_MAX, description="Increment, signed 64-bit."
    )


Metric = Annotated[Union[GaugeMetric, CounterMetric], Field(discriminator="type")]

# type -> id -> metric
MetricCollection = dict[str, dict[str, Union[GaugeMetric, CounterMetric]]]


class MetricQuery(BaseModel):
    """Body of a JSON value lookup: the key without a value."""

    id: str = Field(min_length=1)
    type: MetricType


class BatchResult(BaseModel):
    """Acknowledgement for a batch update."""

    status: Literal["ok"] = "ok"
    stored: int


metric_adapter: TypeAdapter[GaugeMetric | CounterMetric] = TypeAdapter(Metric)
metric_list_adapter: TypeAdapter[list[GaugeMetric | CounterMetric]] = TypeAdapter(
    list[Metric]
)
collection_adapter: TypeAdapter[MetricCollection] = TypeAdapter(
    dict[str, dict[str, Metric]]
)
