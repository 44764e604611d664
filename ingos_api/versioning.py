from __future__ import annotations

import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Any

from fastapi import APIRouter, Path, Request, Response
from fastapi.routing import APIRoute
from starlette.routing import Match
from starlette.types import Scope

VERSION_PATH_PARAMETER = "version"
VERSION_PATH_TOKEN = "v{version}"
SUPPORTED_VERSIONS_HEADER = "api-supported-versions"

_VERSION_RE = re.compile(r"^(\d+)(?:\.(\d+))?$")
_PATH_PARAM_RE = re.compile(r"(\{[^}]*\})")


@total_ordering
@dataclass(frozen=True)
class ApiVersion:
    major: int
    minor: int = 0

    @classmethod
    def parse(cls, value: str) -> "ApiVersion":
        match = _VERSION_RE.match((value or "").strip())
        if match is None:
            raise ValueError(f"Invalid API version: {value!r}")
        return cls(int(match.group(1)), int(match.group(2) or 0))

    @property
    def group_name(self) -> str:
        return f"v{self.major}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ApiVersion):
            return NotImplemented
        return (self.major, self.minor) < (other.major, other.minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


DEFAULT_API_VERSION = ApiVersion(1, 0)


def lowercase_static_segments(path: str) -> str:
    # Route parameter names keep their casing.
    return "".join(part if part.startswith("{") else part.lower() for part in _PATH_PARAM_RE.split(path))


class VersionedAPIRoute(APIRoute):
    """Route that only matches requests for one of its API versions."""

    api_versions: tuple[ApiVersion, ...] = (DEFAULT_API_VERSION,)

    @property
    def is_version_in_path(self) -> bool:
        return VERSION_PATH_TOKEN in self.path

    def matches(self, scope: Scope) -> tuple[Match, Scope]:
        match, child_scope = super().matches(scope)
        if match == Match.NONE or not self.is_version_in_path:
            return match, child_scope
        raw_version = child_scope.get("path_params", {}).get(VERSION_PATH_PARAMETER)
        try:
            requested = ApiVersion.parse(str(raw_version))
        except ValueError:
            return Match.NONE, {}
        if not self.supports_requested(str(raw_version), requested):
            return Match.NONE, {}
        return match, child_scope

    def supports_requested(self, raw_version: str, requested: ApiVersion) -> bool:
        # "v1" addresses the 1.x line; "v1.2" addresses exactly 1.2.
        if "." in raw_version:
            return requested in self.api_versions
        return any(v.major == requested.major for v in self.api_versions)


class VersionedRouter(APIRouter):
    def __init__(self, *, api_versions: tuple[ApiVersion, ...] | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("route_class", VersionedAPIRoute)
        kwargs.setdefault("generate_unique_id_function", _route_name_as_operation_id)
        super().__init__(**kwargs)
        self.api_versions = tuple(sorted(api_versions)) if api_versions else None

    def add_api_route(self, path: str, endpoint: Any, **kwargs: Any) -> None:
        super().add_api_route(lowercase_static_segments(path), endpoint, **kwargs)


def _route_name_as_operation_id(route: APIRoute) -> str:
    return route.name


def _report_versions(request: Request, response: Response) -> None:
    route = request.scope.get("route")
    versions = getattr(route, "api_versions", None) or (DEFAULT_API_VERSION,)
    response.headers[SUPPORTED_VERSIONS_HEADER] = ", ".join(str(v) for v in sorted(set(versions)))


async def api_version_from_path(
    request: Request,
    response: Response,
    version: str = Path(..., description="API version"),
) -> ApiVersion:
    api_version = ApiVersion.parse(version)
    request.state.api_version = api_version
    _report_versions(request, response)
    return api_version


async def assume_default_api_version(request: Request, response: Response) -> ApiVersion:
    request.state.api_version = DEFAULT_API_VERSION
    _report_versions(request, response)
    return DEFAULT_API_VERSION


def requested_api_version(request: Request) -> ApiVersion:
    return getattr(request.state, "api_version", None) or DEFAULT_API_VERSION


@dataclass
class ApiDescription:
    route: APIRoute
    api_version: ApiVersion
    http_method: str
    relative_path: str

    @property
    def group_name(self) -> str:
        return self.api_version.group_name


@dataclass(frozen=True)
class ApiVersionDescription:
    api_version: ApiVersion
    group_name: str


class ApiVersionDescriptionProvider:
    def __init__(self, routes: list[Any]) -> None:
        self._routes = [r for r in routes if isinstance(r, VersionedAPIRoute)]

    @property
    def api_version_descriptions(self) -> list[ApiVersionDescription]:
        versions = sorted({v for route in self._routes for v in route.api_versions})
        return [ApiVersionDescription(api_version=v, group_name=v.group_name) for v in versions]

    @property
    def group_names(self) -> list[str]:
        names: list[str] = []
        for description in self.api_version_descriptions:
            if description.group_name not in names:
                names.append(description.group_name)
        return names

    def api_descriptions(self) -> list[ApiDescription]:
        descriptions: list[ApiDescription] = []
        for route in self._routes:
            if not route.include_in_schema:
                continue
            for version in route.api_versions:
                for method in sorted(route.methods or ()):
                    descriptions.append(
                        ApiDescription(route=route, api_version=version, http_method=method, relative_path=route.path)
                    )
        return descriptions
