from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ingos_api.data_protection import DataProtectionError
from ingos_api.errors import api_error_response, correlation_id_of, error_response
from ingos_api.openapi_docs import to_camel_case


def _field_path(location: tuple[Any, ...]) -> str:
    # ("query", "page_size") -> "query.pageSize"
    return ".".join(to_camel_case(part) if isinstance(part, str) else str(part) for part in location)


def validation_details(exc: RequestValidationError) -> list[dict[str, str]]:
    return [
        {"field": _field_path(tuple(err.get("loc") or ())), "message": err.get("msg", "invalid value")}
        for err in exc.errors()
    ]


def register_exception_handlers(api: FastAPI, *, logger: logging.Logger) -> None:
    @api.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return api_error_response(request, exc)

    @api.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = validation_details(exc)
        return error_response(
            request,
            status_code=400,
            code="VALIDATION_ERROR",
            message="; ".join(f"{d['field']}: {d['message']}" for d in details) or "invalid request",
            details=details,
        )

    @api.exception_handler(DataProtectionError)
    async def data_protection_handler(request: Request, exc: DataProtectionError) -> JSONResponse:
        logger.warning("data_protection_rejected", extra={"error": str(exc)})
        return error_response(request, status_code=400, code="INVALID_PROTECTED_PAYLOAD", message=str(exc))

    # Starlette renders the developer exception page instead when the app runs with debug=True.
    @api.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            extra={"correlation_id": correlation_id_of(request), "error": type(exc).__name__},
        )
        return error_response(request, status_code=500, code="INTERNAL_ERROR", message="Internal Server Error")
