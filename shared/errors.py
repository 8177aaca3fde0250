"""Error taxonomy shared by the storage engine and the HTTP layer."""

from __future__ import annotations

from typing import Any

from .schemas import ErrorCode, ErrorResponse


class MetricsError(Exception):
    """Base class for every user-visible failure of the collector."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class MetricNotFoundError(MetricsError):
    """Requested (type, id) is absent from the store."""

    code = ErrorCode.NOT_FOUND
    status_code = 404


class MetricParseError(MetricsError):
    """Malformed metric type or numeric value in an incoming update."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class MetricStoreError(MetricsError):
    """Transient backend failure; eligible for the repository retry policy."""

    code = ErrorCode.STORE_FAILED
    status_code = 500
    retryable = True


class UnsupportedOperationError(MetricsError):
    """Operation that the active storage backend does not provide."""

    code = ErrorCode.UNSUPPORTED_OPERATION
    status_code = 500
