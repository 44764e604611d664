from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.routing import Match

from ingos_api.logging_config import request_path_var, user_id_var
from ingos_api.security_dependencies import optional_current_user

REQUEST_COUNT = Counter(
    "ingos_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "ingos_http_request_duration_seconds",
    "HTTP request latency (seconds)",
    ["method", "path"],
)
ALLOWED_HTTP_METHOD_LABELS = {"GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"}
MAX_PATH_LABEL_LENGTH = 96

logger = logging.getLogger("ingos.api")


def _route_template(request: Request, api: FastAPI) -> str:
    route = request.scope.get("route")
    route_path = getattr(route, "path", None)
    if route_path:
        return str(route_path)
    for candidate in api.router.routes:
        try:
            matched, _ = candidate.matches(request.scope)
        except (AttributeError, KeyError, TypeError, ValueError):
            continue
        if matched == Match.FULL and getattr(candidate, "path", None):
            return str(candidate.path)
    return "/_unmatched"


def metric_method_label(method: str | None) -> str:
    normalized = (method or "").upper()
    if normalized in ALLOWED_HTTP_METHOD_LABELS:
        return normalized
    return "OTHER"


def metric_path_label(request: Request, api: FastAPI) -> str:
    path = _route_template(request, api)
    if len(path) > MAX_PATH_LABEL_LENGTH:
        return "/_label_too_long"
    return path


def log_enrichment(api: FastAPI):
    async def enrich_request_logs(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        user = optional_current_user(request)
        path_token = request_path_var.set(request.url.path)
        user_token = user_id_var.set(user.id if user else None)
        started = time.perf_counter()
        client_ip = request.client.host if request.client else None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = int(response.status_code)
            return response
        finally:
            elapsed = time.perf_counter() - started
            path = metric_path_label(request, api)
            method = metric_method_label(request.method)
            REQUEST_COUNT.labels(method, path, str(status_code)).inc()
            REQUEST_LATENCY.labels(method, path).observe(elapsed)
            log_payload = {
                "method": request.method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(elapsed * 1000, 2),
                "client_ip": client_ip,
            }
            if status_code >= 500:
                logger.error("request_failed", extra=log_payload)
            else:
                logger.info("request_completed", extra=log_payload)
            user_id_var.reset(user_token)
            request_path_var.reset(path_token)

    return enrich_request_logs


def register_metrics_route(api: FastAPI) -> None:
    @api.get("/metrics", tags=["system"], include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
