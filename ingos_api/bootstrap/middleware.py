from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ingos_api.auditing import AuditingOptions, AuditLogScope, begin_audit_scope, end_audit_scope, write_audit_log
from ingos_api.bootstrap.services import ServiceRegistry
from ingos_api.config import Config
from ingos_api.errors import CORRELATION_ID_HEADER
from ingos_api.localization import CULTURE_COOKIE_NAME, CULTURE_QUERY_PARAMETER, LocalizationOptions, resolve_request_culture
from ingos_api.logging_config import correlation_id_var
from ingos_api.observability import log_enrichment
from ingos_api.security_dependencies import optional_current_user
from ingos_api.security_jwt import TOKEN_EXPIRED_HEADER, JwtBearerHandler
from ingos_api.unit_of_work import UnitOfWork
from ingos_api.virtual_files import VirtualFileSystem

logger = logging.getLogger("ingos.pipeline")

Dispatch = Callable[[Request, Callable[[Request], Awaitable[Response]]], Awaitable[Response]]

# (earlier stage, later stage) pairs the pipeline must respect.
ORDERING_RULES = (
    ("cors", "authentication"),
    ("authentication", "authorization"),
    ("unit_of_work", "endpoints"),
)
STATIC_FILE_METHODS = frozenset({"GET", "HEAD"})
WWWROOT = "/wwwroot"


@dataclass(frozen=True)
class PipelineStage:
    name: str
    middleware_class: type | None = None
    options: dict[str, Any] = field(default_factory=dict)


def _dispatch_stage(name: str, dispatch: Dispatch) -> PipelineStage:
    return PipelineStage(name=name, middleware_class=BaseHTTPMiddleware, options={"dispatch": dispatch})


def build_localization_dispatch(options: LocalizationOptions) -> Dispatch:
    async def request_localization(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        culture = resolve_request_culture(
            options,
            query_culture=request.query_params.get(CULTURE_QUERY_PARAMETER),
            cookie_value=request.cookies.get(CULTURE_COOKIE_NAME),
            accept_language=request.headers.get("Accept-Language"),
        )
        request.state.culture = culture
        response = await call_next(request)
        response.headers.setdefault("Content-Language", culture)
        return response

    return request_localization


async def correlation_id(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    value = (request.headers.get(CORRELATION_ID_HEADER) or "").strip() or uuid4().hex
    request.state.correlation_id = value
    token = correlation_id_var.set(value)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token)
    response.headers[CORRELATION_ID_HEADER] = value
    return response


def build_virtual_files_dispatch(vfs: VirtualFileSystem) -> Dispatch:
    async def virtual_files(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        path = request.url.path
        if request.method in STATIC_FILE_METHODS and path not in {"", "/"}:
            file = await run_in_threadpool(vfs.get_file, f"{WWWROOT}{path}")
            if file is not None:
                body = file.content if request.method == "GET" else b""
                return Response(content=body, media_type=file.media_type)
        return await call_next(request)

    return virtual_files


def build_authentication_dispatch(handler: JwtBearerHandler) -> Dispatch:
    async def authentication(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        result = await run_in_threadpool(handler.authenticate, request.headers.get("Authorization"))
        request.state.authentication = result
        if result.failure is not None:
            logger.info("authentication_failed", extra={"error": result.failure.value})

        response = await call_next(request)
        if result.token_expired:
            response.headers[TOKEN_EXPIRED_HEADER] = "true"
        return response

    return authentication


def build_auditing_dispatch(options: AuditingOptions) -> Dispatch:
    async def auditing(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        if not options.is_enabled:
            return await call_next(request)

        user = optional_current_user(request)
        scope = AuditLogScope(
            options=options,
            http_method=request.method,
            url=request.url.path,
            correlation_id=getattr(request.state, "correlation_id", None),
            client_ip=request.client.host if request.client else None,
            user_id=user.id if user else None,
        )
        token = begin_audit_scope(scope)
        status_code: int | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            scope.add_exception(exc)
            status_code = 500
            raise
        finally:
            end_audit_scope(token)
            if options.should_save(scope):
                write_audit_log(scope, status_code=status_code)

    return auditing


def build_unit_of_work_dispatch(engine_provider: Callable[[], Engine]) -> Dispatch:
    async def unit_of_work(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        uow = UnitOfWork(engine_provider())
        request.state.unit_of_work = uow
        try:
            response = await call_next(request)
        except Exception:
            await run_in_threadpool(uow.rollback)
            raise
        if response.status_code >= 400:
            await run_in_threadpool(uow.rollback)
        else:
            await run_in_threadpool(uow.commit)
        return response

    return unit_of_work


def build_pipeline(api: FastAPI, config: Config, services: ServiceRegistry) -> list[PipelineStage]:
    stages: list[PipelineStage] = []
    if config.is_development:
        # Rendered by Starlette's ServerErrorMiddleware when the app runs with debug=True.
        stages.append(PipelineStage("developer_exception_page"))
    stages.extend(
        [
            _dispatch_stage("request_localization", build_localization_dispatch(services.localization)),
            _dispatch_stage("correlation_id", correlation_id),
            _dispatch_stage("virtual_files", build_virtual_files_dispatch(services.virtual_files)),
            PipelineStage("routing"),
            PipelineStage("cors", CORSMiddleware, dict(services.cors_options)),
            _dispatch_stage("authentication", build_authentication_dispatch(services.authentication)),
            PipelineStage("authorization"),
            PipelineStage("health_checks"),
            PipelineStage("swagger"),
            _dispatch_stage("auditing", build_auditing_dispatch(services.auditing)),
            _dispatch_stage("log_enrichment", log_enrichment(api)),
            _dispatch_stage("unit_of_work", build_unit_of_work_dispatch(lambda: api.state.db_engine)),
            PipelineStage("endpoints"),
        ]
    )
    return stages


def validate_pipeline_order(names: list[str]) -> None:
    if not names or names[-1] != "endpoints":
        raise RuntimeError("Endpoint dispatch must be the last pipeline stage.")
    for before, after in ORDERING_RULES:
        if before not in names or after not in names:
            raise RuntimeError(f"Pipeline requires both '{before}' and '{after}' stages.")
        if names.index(before) > names.index(after):
            raise RuntimeError(f"Pipeline stage '{before}' must run before '{after}'.")


def register_pipeline(api: FastAPI, stages: list[PipelineStage]) -> None:
    validate_pipeline_order([stage.name for stage in stages])
    # add_middleware prepends, so adding in reverse keeps the first stage outermost.
    for stage in reversed(stages):
        if stage.middleware_class is not None:
            api.add_middleware(stage.middleware_class, **stage.options)
    api.state.pipeline = [stage.name for stage in stages]
