from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from ingos_api.auditing import AuditingOptions, configure_auditing
from ingos_api.bootstrap.contracts import HealthCheck
from ingos_api.bootstrap.controllers import ConventionalControllerSetting, register_conventional_controllers
from ingos_api.cache import DistributedCache
from ingos_api.config import Config
from ingos_api.data_protection import DataProtector, configure_data_protection
from ingos_api.database import check_database
from ingos_api.errors import CORRELATION_ID_HEADER
from ingos_api.localization import LocalizationOptions, StringLocalizer, configure_localization
from ingos_api.modules import ModuleDefinition
from ingos_api.openapi_docs import API_DOC_PATHS, SwaggerDocumentGenerator, get_api_doc_paths
from ingos_api.security_jwt import TOKEN_EXPIRED_HEADER, JwtBearerHandler, build_token_validator
from ingos_api.versioning import SUPPORTED_VERSIONS_HEADER, ApiVersionDescriptionProvider
from ingos_api.virtual_files import VirtualFileSystem, configure_virtual_file_system

logger = logging.getLogger("ingos.bootstrap")


CORS_EXPOSED_HEADERS = [TOKEN_EXPIRED_HEADER, CORRELATION_ID_HEADER, SUPPORTED_VERSIONS_HEADER]


@dataclass
class ServiceRegistry:
    config: Config
    modules: list[ModuleDefinition]
    health_checks: dict[str, HealthCheck] = field(default_factory=dict)
    auditing: AuditingOptions | None = None
    api_version_provider: ApiVersionDescriptionProvider | None = None
    authentication: JwtBearerHandler | None = None
    localization: LocalizationOptions | None = None
    cache: DistributedCache | None = None
    virtual_files: VirtualFileSystem | None = None
    data_protector: DataProtector | None = None
    cors_options: dict[str, Any] = field(default_factory=dict)
    swagger: SwaggerDocumentGenerator | None = None
    localizer: StringLocalizer | None = None


def configure_health_checks(api: FastAPI) -> dict[str, HealthCheck]:
    # Resolve the engine per call so a replaced engine is probed.
    return {"database": lambda: check_database(api.state.db_engine)}


def _wildcard_origin_pattern(origin: str) -> str:
    scheme, _, host = origin.partition("://")
    domain = host[2:] if host.startswith("*.") else host
    return rf"{re.escape(scheme)}://([a-zA-Z0-9-]+\.)+{re.escape(domain)}"


def build_cors_options(config: Config) -> dict[str, Any]:
    origins = config.cors_origins_list
    exact = [origin for origin in origins if "*." not in origin]
    wildcard = [origin for origin in origins if "*." in origin]
    options: dict[str, Any] = {
        "allow_origins": exact,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
        "allow_credentials": True,
        "expose_headers": list(CORS_EXPOSED_HEADERS),
    }
    if wildcard:
        options["allow_origin_regex"] = "|".join(f"(?:{_wildcard_origin_pattern(o)})" for o in wildcard)
    return options


def configure_services(
    api: FastAPI,
    config: Config,
    *,
    modules: list[ModuleDefinition],
    controllers: list[ConventionalControllerSetting],
    redis_factory: Callable[..., Any] | None = None,
) -> ServiceRegistry:
    services = ServiceRegistry(config=config, modules=modules)
    content_root = Path(config.CONTENT_ROOT_PATH)

    services.health_checks = configure_health_checks(api)
    services.auditing = configure_auditing()

    routes = register_conventional_controllers(api, controllers, modules=modules)
    services.api_version_provider = ApiVersionDescriptionProvider(routes)

    services.authentication = JwtBearerHandler(build_token_validator(config))
    services.localization = configure_localization()
    services.cache = DistributedCache(
        redis_url=config.redis_configuration,
        default_ttl_seconds=config.CACHE_DEFAULT_TTL_SECONDS,
        redis_factory=redis_factory,
    )
    services.virtual_files = configure_virtual_file_system(
        modules,
        is_development=config.is_development,
        content_root=content_root,
    )
    services.data_protector = configure_data_protection(config, redis_factory=redis_factory)
    services.cors_options = build_cors_options(config)
    services.swagger = SwaggerDocumentGenerator(
        services.api_version_provider,
        auth_mode=config.auth_mode,
        authority=config.AUTH_SERVER_AUTHORITY,
        api_doc_files=get_api_doc_paths(API_DOC_PATHS, content_root),
    )
    services.localizer = StringLocalizer(services.localization, services.virtual_files)

    logger.info(
        "services_configured",
        extra={
            "auth_mode": config.auth_mode,
            "api_versions": [str(d.api_version) for d in services.api_version_provider.api_version_descriptions],
            "development": config.is_development,
        },
    )
    return services
