from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from fastapi.openapi.utils import get_openapi

from ingos_api.config import AUTH_MODE_REMOTE
from ingos_api.versioning import (
    VERSION_PATH_PARAMETER,
    VERSION_PATH_TOKEN,
    ApiDescription,
    ApiVersionDescriptionProvider,
)

logger = logging.getLogger("ingos.openapi")

DOCUMENT_TITLE = "Ingos API"
DOCUMENT_DESCRIPTION = "Ingos API"
CONTACT = {
    "name": "Ingos API Team",
    "email": "api@ingos.dev",
    "url": "https://ingos.dev",
}
OAUTH_SCOPES = {"Ingos": "Ingos API"}
API_DOC_PATHS = (
    "wwwroot/api-doc/Ingos.API.json",
    "wwwroot/api-doc/Ingos.Application.json",
    "wwwroot/api-doc/Ingos.Application.Contracts.json",
)
SWAGGER_UI_PATH = "/swagger"
SWAGGER_OAUTH2_REDIRECT_PATH = "/swagger/oauth2-redirect.html"

_PATH_PARAM_RE = re.compile(r"\{([^}:]+)(:[^}]*)?\}")


def swagger_json_url(document_name: str) -> str:
    return f"/swagger/{document_name}/swagger.json"


def include_in_document(document_name: str, description: ApiDescription) -> bool:
    api_version = f"v{description.api_version.major}"
    if document_name != api_version:
        return False

    values = [segment.replace(VERSION_PATH_TOKEN, api_version) for segment in description.relative_path.split("/")]
    description.relative_path = "/".join(values)
    return True


def to_camel_case(name: str) -> str:
    parts = [part for part in name.split("_") if part]
    if not parts:
        return name
    head, *tail = parts
    return head[:1].lower() + head[1:] + "".join(part[:1].upper() + part[1:] for part in tail)


def remove_version_parameter(operation: dict[str, Any]) -> None:
    parameters = operation.get("parameters")
    if not parameters:
        return
    remaining = [
        p for p in parameters if not (p.get("name") == VERSION_PATH_PARAMETER and p.get("in") == "path")
    ]
    if remaining:
        operation["parameters"] = remaining
    else:
        operation.pop("parameters", None)


def describe_parameters_in_camel_case(operation: dict[str, Any]) -> None:
    for parameter in operation.get("parameters") or []:
        if parameter.get("in") in {"query", "path", "cookie"}:
            parameter["name"] = to_camel_case(str(parameter.get("name", "")))


def _camel_case_path(path: str) -> str:
    return _PATH_PARAM_RE.sub(lambda m: "{" + to_camel_case(m.group(1)) + "}", path)


def get_api_doc_paths(paths: Iterable[str], base_path: Path) -> list[Path]:
    return [base_path / path for path in paths]


def load_api_doc_comments(files: Iterable[Path]) -> dict[str, dict[str, Any]]:
    comments: dict[str, dict[str, Any]] = {"operations": {}, "schemas": {}}
    for file in files:
        if not file.is_file():
            continue
        document = json.loads(file.read_text(encoding="utf-8"))
        for section in ("operations", "schemas"):
            values = document.get(section) if isinstance(document, dict) else None
            if isinstance(values, dict):
                comments[section].update(values)
    return comments


def apply_api_doc_comments(schema: dict[str, Any], comments: dict[str, dict[str, Any]]) -> None:
    operation_comments = comments.get("operations") or {}
    for path_item in (schema.get("paths") or {}).values():
        for operation in path_item.values():
            comment = operation_comments.get(operation.get("operationId"))
            if not isinstance(comment, dict):
                continue
            for field in ("summary", "description"):
                if comment.get(field):
                    operation[field] = comment[field]

    schema_comments = comments.get("schemas") or {}
    components = (schema.get("components") or {}).get("schemas") or {}
    for name, component in components.items():
        comment = schema_comments.get(name)
        if not isinstance(comment, dict):
            continue
        if comment.get("description"):
            component["description"] = comment["description"]
        properties = component.get("properties") or {}
        for prop_name, prop_description in (comment.get("properties") or {}).items():
            if prop_name in properties and prop_description:
                properties[prop_name]["description"] = prop_description


class SwaggerDocumentGenerator:
    def __init__(
        self,
        provider: ApiVersionDescriptionProvider,
        *,
        auth_mode: str,
        authority: str | None = None,
        api_doc_files: Iterable[Path] = (),
    ) -> None:
        self.provider = provider
        self.auth_mode = auth_mode
        self.authority = (authority or "").rstrip("/")
        self.api_doc_files = list(api_doc_files)
        self._documents: dict[str, dict[str, Any]] = {}

    @property
    def document_names(self) -> list[str]:
        return self.provider.group_names

    def ui_endpoints(self) -> list[dict[str, str]]:
        names = sorted(self.document_names, key=lambda name: int(name[1:]), reverse=True)
        return [{"url": swagger_json_url(name), "name": f"{DOCUMENT_TITLE} {name.upper()}"} for name in names]

    def generate(self, document_name: str) -> dict[str, Any] | None:
        if document_name not in self.document_names:
            return None
        if document_name not in self._documents:
            self._documents[document_name] = self._build(document_name)
        return self._documents[document_name]

    def _build(self, document_name: str) -> dict[str, Any]:
        descriptions = [d for d in self.provider.api_descriptions() if include_in_document(document_name, d)]
        routes: list[Any] = []
        path_map: dict[str, str] = {}
        for description in descriptions:
            if description.route not in routes:
                routes.append(description.route)
            path_map[description.route.path_format] = description.relative_path

        schema = get_openapi(
            title=DOCUMENT_TITLE,
            version=document_name,
            description=DOCUMENT_DESCRIPTION,
            routes=routes,
            contact=CONTACT,
        )

        paths: dict[str, Any] = {}
        for path, path_item in (schema.get("paths") or {}).items():
            for operation in path_item.values():
                remove_version_parameter(operation)
                describe_parameters_in_camel_case(operation)
            paths[_camel_case_path(path_map.get(path, path))] = path_item
        schema["paths"] = paths

        self._add_security(schema)
        apply_api_doc_comments(schema, load_api_doc_comments(self.api_doc_files))
        return schema

    def _add_security(self, schema: dict[str, Any]) -> None:
        security_schemes = schema.setdefault("components", {}).setdefault("securitySchemes", {})
        if self.auth_mode == AUTH_MODE_REMOTE:
            security_schemes["oauth2"] = {
                "type": "oauth2",
                "flows": {
                    "authorizationCode": {
                        "authorizationUrl": f"{self.authority}/connect/authorize",
                        "tokenUrl": f"{self.authority}/connect/token",
                        "scopes": dict(OAUTH_SCOPES),
                    }
                },
            }
            schema["security"] = [{"oauth2": list(OAUTH_SCOPES)}]
        else:
            security_schemes["bearer"] = {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
            schema["security"] = [{"bearer": []}]
