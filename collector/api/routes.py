"""FastAPI route definitions for the metrics collector.

Handlers translate HTTP requests into repository calls; failures travel as
``MetricsError`` subclasses and are rendered by the handlers installed in
``install_error_handlers``.
"""

from __future__ import annotations

import html
import logging
from typing import Annotated, Union

from fastapi import APIRouter, Body, Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from shared.errors import MetricsError
from shared.metrics import metric_value, parse_metric
from shared.schemas import (
    BatchResult,
    CounterMetric,
    ErrorCode,
    ErrorResponse,
    GaugeMetric,
    Metric,
    MetricCollection,
    MetricQuery,
)

from ..core.repository import MetricsRepository

logger = logging.getLogger(__name__)

router = APIRouter()

MetricBody = Annotated[Union[GaugeMetric, CounterMetric], Body(discriminator="type")]


def get_repository() -> MetricsRepository:
    """Dependency placeholder for injecting the metrics repository."""
    raise NotImplementedError("Repository dependency must be wired in main.py")


@router.post("/update/{mtype}/{name}/{value}", response_class=PlainTextResponse)
async def update_from_path(
    mtype: str, name: str, value: str, repository: MetricsRepository = Depends(get_repository)
):
    """Store one metric whose type, name and value come from the path."""
    metric = parse_metric(mtype, name, value)
    await repository.save_metric(metric)
    return f"metric {name} of type {mtype} with value {value} has been set successfully"


@router.get("/value/{mtype}/{name}")
async def value_from_path(
    mtype: str, name: str, repository: MetricsRepository = Depends(get_repository)
):
    metric = await repository.get_metric(mtype, name)
    return metric_value(metric)


@router.post("/update/")
async def update_from_json(
    payload: MetricBody, repository: MetricsRepository = Depends(get_repository)
):
    """Store one JSON metric and return its value after the merge."""
    await repository.save_metric(payload)
    stored = await repository.get_metric(payload.type, payload.id)
    return stored.model_dump(mode="json")


@router.post("/updates/")
async def update_batch(
    payload: list[Metric], repository: MetricsRepository = Depends(get_repository)
):
    """Store a batch of JSON metrics reported by an agent."""
    await repository.save_metrics(payload)
    return BatchResult(stored=len(payload)).model_dump()


@router.post("/value/")
async def value_from_json(
    query: MetricQuery, repository: MetricsRepository = Depends(get_repository)
):
    metric = await repository.get_metric(query.type.value, query.id)
    return metric.model_dump(mode="json")


@router.get("/", response_class=HTMLResponse)
async def list_metrics(repository: MetricsRepository = Depends(get_repository)):
    """Render every stored metric as a plain HTML list."""
    return render_metrics_page(await repository.get_metrics())


@router.get("/ping")
async def ping(repository: MetricsRepository = Depends(get_repository)):
    if await repository.ping():
        return {"status": "ok"}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            code=ErrorCode.STORE_FAILED, message="Storage backend is unreachable."
        ).model_dump(mode="json"),
    )


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


def render_metrics_page(collection: MetricCollection) -> str:
    items = [
        f"        <li>{html.escape(metric.type)} {html.escape(metric.id)}: {metric_value(metric)}</li>"
        for mtype in sorted(collection)
        for _, metric in sorted(collection[mtype].items())
    ]
    return "\n".join(
        [
            "<!DOCTYPE html>",
            "<html>",
            "<head><title>Metrics</title></head>",
            "<body>",
            "    <h1>Metrics</h1>",
            "    <ul>",
            *items,
            "    </ul>",
            "</body>",
            "</html>",
        ]
    )


def install_error_handlers(app: FastAPI) -> None:
    """Map the metrics error taxonomy and body validation onto HTTP responses."""

    @app.exception_handler(MetricsError)
    async def _metrics_error(request: Request, exc: MetricsError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(
                code=ErrorCode.VALIDATION_ERROR,
                message="Invalid request payload.",
                details={"errors": jsonable_encoder(exc.errors())},
            ).model_dump(mode="json"),
        )
