from __future__ import annotations

from fastapi import FastAPI
from fastapi.openapi.docs import get_swagger_ui_html, get_swagger_ui_oauth2_redirect_html
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from ingos_api.bootstrap.services import ServiceRegistry
from ingos_api.config import AUTH_MODE_REMOTE
from ingos_api.errors import http_error
from ingos_api.openapi_docs import DOCUMENT_TITLE, SWAGGER_OAUTH2_REDIRECT_PATH, SWAGGER_UI_PATH
from ingos_api.schemas import HealthCheckEntry, HealthResponse

HEALTH_PATH = "/health"


def register_health_checks(api: FastAPI, services: ServiceRegistry) -> None:
    health_checks = services.health_checks

    @api.get(HEALTH_PATH, tags=["system"], response_model=HealthResponse, include_in_schema=False)
    async def health() -> HealthResponse | JSONResponse:
        checks: dict[str, HealthCheckEntry] = {}
        for name, check in health_checks.items():
            ok, detail = await run_in_threadpool(check)
            checks[name] = HealthCheckEntry(status="Healthy" if ok else "Unhealthy", description=detail)
        healthy = all(entry.status == "Healthy" for entry in checks.values())
        payload = HealthResponse(status="Healthy" if healthy else "Unhealthy", checks=checks)
        if healthy:
            return payload
        return JSONResponse(status_code=503, content=payload.model_dump())


def register_swagger(api: FastAPI, services: ServiceRegistry) -> None:
    generator = services.swagger
    config = services.config
    remote = config.auth_mode == AUTH_MODE_REMOTE

    @api.get("/swagger/{document_name}/swagger.json", include_in_schema=False)
    async def swagger_json(document_name: str) -> JSONResponse:
        document = generator.generate(document_name)
        if document is None:
            raise http_error(404, "NOT_FOUND", "Not Found", details={"document": document_name})
        return JSONResponse(document)

    @api.get(SWAGGER_UI_PATH, include_in_schema=False)
    async def swagger_ui() -> HTMLResponse:
        endpoints = generator.ui_endpoints()
        init_oauth = None
        if remote:
            init_oauth = {
                "clientId": config.AUTH_SERVER_SWAGGER_CLIENT_ID,
                "clientSecret": config.AUTH_SERVER_SWAGGER_CLIENT_SECRET,
                "scopes": "Ingos",
            }
        return get_swagger_ui_html(
            openapi_url=endpoints[0]["url"] if endpoints else "",
            title=DOCUMENT_TITLE,
            oauth2_redirect_url=SWAGGER_OAUTH2_REDIRECT_PATH if remote else None,
            init_oauth=init_oauth,
            swagger_ui_parameters={
                "urls": endpoints,
                "urls.primaryName": endpoints[0]["name"] if endpoints else None,
            },
        )

    if remote:

        @api.get(SWAGGER_OAUTH2_REDIRECT_PATH, include_in_schema=False)
        async def swagger_ui_redirect() -> HTMLResponse:
            return get_swagger_ui_oauth2_redirect_html()
