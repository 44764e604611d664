"""JSON error envelope shared by every error the host returns.

Handlers raise ``ApiError`` (through ``http_error``); the exception handlers
turn it, and any other ``HTTPException``, into an ``ErrorResponse`` body that
echoes the request's correlation id.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Optional

from fastapi import HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ingos_api.schemas import ErrorResponse

CORRELATION_ID_HEADER = "X-Correlation-Id"

STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


class ApiError(HTTPException):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        details: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=dict(headers) if headers else None)
        self.code = code
        self.message = message
        self.details = details


def http_error(
    status_code: int,
    code: str,
    message: str,
    *,
    details: Optional[Any] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> ApiError:
    return ApiError(status_code, code, message, details=details, headers=headers)


def correlation_id_of(request: Request) -> Optional[str]:
    return getattr(request.state, "correlation_id", None)


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Any] = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    correlation_id = correlation_id_of(request)
    body = ErrorResponse(
        code=code,
        message=message,
        error=message,
        request_id=correlation_id,
        details=jsonable_encoder(details) if details is not None else None,
    )
    response_headers = dict(headers or {})
    if correlation_id:
        response_headers[CORRELATION_ID_HEADER] = correlation_id
    return JSONResponse(body.model_dump(exclude_none=True), status_code=status_code, headers=response_headers or None)


def api_error_response(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc, ApiError):
        code, message, details = exc.code, exc.message, exc.details
    else:
        code = STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
        message = str(exc.detail) if exc.detail is not None else "Request failed"
        details = None
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=message,
        details=details,
        headers=exc.headers,
    )
