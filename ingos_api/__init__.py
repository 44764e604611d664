import logging
from collections.abc import Callable
from contextlib import asynccontextmanager, suppress
from typing import Any

from fastapi import FastAPI

from ingos_api.bootstrap import (
    build_pipeline,
    configure_services,
    preconfigure_conventional_controllers,
    register_exception_handlers,
    register_health_checks,
    register_pipeline,
    register_swagger,
    validate_startup_config,
)
from ingos_api.config import Config
from ingos_api.database import init_db
from ingos_api.logging_config import configure_logging
from ingos_api.modules import resolve_initialization_order
from ingos_api.observability import register_metrics_route
from ingos_api.version import APP_VERSION

OPENAPI_TAGS: list[dict[str, str]] = [
    {"name": "abp", "description": "Framework built-in endpoints"},
    {"name": "profile", "description": "Current user profile"},
    {"name": "localization", "description": "Localized texts"},
]

logger = logging.getLogger("ingos.api")


def create_app(app_config: Config | None = None, *, redis_factory: Callable[..., Any] | None = None) -> FastAPI:
    if app_config is None:
        app_config = Config()

    configure_logging(level=app_config.LOG_LEVEL, json_logs=app_config.LOG_JSON)
    validate_startup_config(app_config)

    modules = resolve_initialization_order()
    logger.info("modules_resolved", extra={"modules": [module.name for module in modules]})

    @asynccontextmanager
    async def _lifespan(_api: FastAPI):
        try:
            yield
        finally:
            cache = getattr(_api.state, "cache", None)
            if cache is not None:
                cache.close()
            db_engine = getattr(_api.state, "db_engine", None)
            if db_engine is not None and hasattr(db_engine, "dispose"):
                with suppress(Exception):
                    db_engine.dispose()

    api = FastAPI(
        title="Ingos API",
        version=APP_VERSION,
        description="Ingos web API host",
        openapi_tags=OPENAPI_TAGS,
        debug=app_config.is_development,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
        lifespan=_lifespan,
    )
    api.state.config = app_config
    api.state.db_engine = init_db(
        app_config.DATABASE_URL,
        pool_size=app_config.DB_POOL_SIZE,
        max_overflow=app_config.DB_MAX_OVERFLOW,
        pool_timeout_seconds=app_config.DB_POOL_TIMEOUT_SECONDS,
        pool_recycle_seconds=app_config.DB_POOL_RECYCLE_SECONDS,
    )

    services = configure_services(
        api,
        app_config,
        modules=modules,
        controllers=preconfigure_conventional_controllers(),
        redis_factory=redis_factory,
    )
    api.state.services = services
    api.state.localizer = services.localizer
    api.state.cache = services.cache
    api.state.api_version_provider = services.api_version_provider
    api.state.data_protector = services.data_protector

    register_health_checks(api, services)
    register_swagger(api, services)
    register_metrics_route(api)
    register_exception_handlers(api, logger=logger)

    register_pipeline(api, build_pipeline(api, app_config, services))
    return api
