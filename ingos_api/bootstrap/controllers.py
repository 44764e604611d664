from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, FastAPI
from fastapi.routing import APIRoute

from ingos_api.modules import ModuleDefinition
from ingos_api.routes import application_configuration, localization, profile
from ingos_api.versioning import (
    DEFAULT_API_VERSION,
    VERSION_PATH_TOKEN,
    ApiVersion,
    VersionedAPIRoute,
    VersionedRouter,
    api_version_from_path,
    assume_default_api_version,
    lowercase_static_segments,
)

logger = logging.getLogger("ingos.bootstrap")


@dataclass(frozen=True)
class ConventionalControllerSetting:
    module: str
    routers: tuple[VersionedRouter, ...]
    root_path: str
    api_versions: tuple[ApiVersion, ...] = ()

    @property
    def prefix(self) -> str:
        return lowercase_static_segments(f"/api/{self.root_path.strip('/')}")

    @property
    def is_version_in_path(self) -> bool:
        return VERSION_PATH_TOKEN in self.root_path


def preconfigure_conventional_controllers() -> list[ConventionalControllerSetting]:
    return [
        ConventionalControllerSetting(
            module="application",
            routers=(profile.router_v1, profile.router_v2, localization.router),
            root_path=VERSION_PATH_TOKEN,
        ),
        # Framework built-in endpoints have no version segment; pin them to 1.0.
        ConventionalControllerSetting(
            module="framework_http_api",
            routers=(application_configuration.router,),
            root_path="abp",
            api_versions=(ApiVersion(1, 0),),
        ),
    ]


def register_conventional_controllers(
    api: FastAPI,
    settings: list[ConventionalControllerSetting],
    *,
    modules: list[ModuleDefinition],
) -> list[VersionedAPIRoute]:
    enabled = {module.name for module in modules}
    registered: list[VersionedAPIRoute] = []
    for setting in settings:
        if setting.module not in enabled:
            logger.info("conventional_controllers_skipped", extra={"module_name": setting.module})
            continue
        version_dependency = api_version_from_path if setting.is_version_in_path else assume_default_api_version
        for router in setting.routers:
            versions = tuple(sorted(router.api_versions or setting.api_versions or (DEFAULT_API_VERSION,)))
            for route in router.routes:
                if isinstance(route, APIRoute):
                    registered.append(_add_versioned_route(api, setting.prefix, route, version_dependency, versions))
    return registered


def _add_versioned_route(
    api: FastAPI,
    prefix: str,
    route: APIRoute,
    version_dependency: Any,
    versions: tuple[ApiVersion, ...],
) -> VersionedAPIRoute:
    # Routes are copied one by one so the app router owns VersionedAPIRoute instances.
    api.router.add_api_route(
        prefix + route.path,
        route.endpoint,
        response_model=route.response_model,
        status_code=route.status_code,
        tags=route.tags,
        dependencies=[Depends(version_dependency), *route.dependencies],
        summary=route.summary,
        description=route.description,
        response_description=route.response_description,
        responses=route.responses,
        deprecated=route.deprecated,
        methods=route.methods,
        operation_id=route.operation_id,
        response_model_include=route.response_model_include,
        response_model_exclude=route.response_model_exclude,
        response_model_by_alias=route.response_model_by_alias,
        response_model_exclude_unset=route.response_model_exclude_unset,
        response_model_exclude_defaults=route.response_model_exclude_defaults,
        response_model_exclude_none=route.response_model_exclude_none,
        include_in_schema=route.include_in_schema,
        response_class=route.response_class,
        name=route.name,
        route_class_override=VersionedAPIRoute,
        callbacks=route.callbacks,
        openapi_extra=route.openapi_extra,
        generate_unique_id_function=route.generate_unique_id_function,
    )
    added = api.router.routes[-1]
    if not isinstance(added, VersionedAPIRoute):
        raise RuntimeError(f"Route {route.path} was not registered as a versioned route.")
    added.api_versions = versions
    return added
