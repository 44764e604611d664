from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
import threading

from ingos_api.virtual_files import VirtualFile, VirtualFileSystem

logger = logging.getLogger("ingos.localization")

DEFAULT_CULTURE = "en"
CULTURE_COOKIE_NAME = ".AspNetCore.Culture"
CULTURE_QUERY_PARAMETER = "culture"
APP_RESOURCE = "Ingos"
BASE_UI_RESOURCE = "AbpUi"

CULTURE_ALIASES = {
    "zh": "zh-Hans",
    "zh-cn": "zh-Hans",
    "zh-sg": "zh-Hans",
    "zh-hans-cn": "zh-Hans",
    "zh-tw": "zh-Hant",
    "zh-hk": "zh-Hant",
    "zh-mo": "zh-Hant",
    "zh-hant-tw": "zh-Hant",
}


@dataclass(frozen=True)
class LanguageInfo:
    culture_name: str
    ui_culture_name: str
    display_name: str


@dataclass
class LocalizationResource:
    name: str
    virtual_path: str
    base_resources: list[str] = field(default_factory=list)

    def add_base_types(self, *names: str) -> "LocalizationResource":
        for name in names:
            if name not in self.base_resources:
                self.base_resources.append(name)
        return self


@dataclass
class LocalizationOptions:
    resources: dict[str, LocalizationResource] = field(default_factory=dict)
    languages: list[LanguageInfo] = field(default_factory=list)
    default_culture: str = DEFAULT_CULTURE

    def add_resource(self, name: str, virtual_path: str) -> LocalizationResource:
        resource = LocalizationResource(name=name, virtual_path=virtual_path)
        self.resources[name] = resource
        return resource

    def get_resource(self, name: str) -> LocalizationResource:
        try:
            return self.resources[name]
        except KeyError:
            raise KeyError(f"Localization resource is not registered: {name}") from None

    @property
    def culture_names(self) -> list[str]:
        return [language.culture_name for language in self.languages]


def configure_localization() -> LocalizationOptions:
    options = LocalizationOptions()
    options.add_resource(BASE_UI_RESOURCE, "/localization/abp_ui")
    options.add_resource(APP_RESOURCE, "/localization/ingos").add_base_types(BASE_UI_RESOURCE)

    options.languages.append(LanguageInfo("zh-Hans", "zh-Hans", "简体中文"))
    options.languages.append(LanguageInfo("zh-Hant", "zh-Hant", "繁體中文"))
    options.languages.append(LanguageInfo("en", "en", "English"))
    return options


class StringLocalizer:
    def __init__(self, options: LocalizationOptions, vfs: VirtualFileSystem) -> None:
        self.options = options
        self._vfs = vfs
        self._texts: dict[tuple[str, str], dict[str, str]] = {}
        self._lock = threading.Lock()

    @property
    def serves_physical_files(self) -> bool:
        return self._vfs.has_physical_files

    def _load_texts(self, resource_name: str, culture: str) -> dict[str, str]:
        key = (resource_name, culture)
        with self._lock:
            cached = self._texts.get(key)
        if cached is not None:
            return cached
        resource = self.options.get_resource(resource_name)
        file = self._vfs.get_file(f"{resource.virtual_path}/{culture}.json")
        if file is None:
            return {}
        texts = self._parse_texts(file)
        # Physical files are re-read on every lookup so edits show up immediately.
        if not file.physical:
            with self._lock:
                self._texts[key] = texts
        return texts

    def _parse_texts(self, file: VirtualFile) -> dict[str, str]:
        document = json.loads(file.read_text())
        texts = document.get("texts") if isinstance(document, dict) else None
        if not isinstance(texts, dict):
            logger.warning("localization_file_invalid", extra={"path": file.path})
            return {}
        return {str(key): str(value) for key, value in texts.items()}

    def _layer(self, resource_name: str, culture: str, seen: set[str]) -> dict[str, str]:
        if resource_name in seen:
            return {}
        seen.add(resource_name)
        resource = self.options.get_resource(resource_name)
        merged: dict[str, str] = {}
        for base_name in resource.base_resources:
            merged.update(self._layer(base_name, culture, seen))
        merged.update(self._load_texts(resource_name, culture))
        return merged

    def get_all_texts(self, resource_name: str, culture: str) -> dict[str, str]:
        merged = dict(self._layer(resource_name, self.options.default_culture, set()))
        if culture != self.options.default_culture:
            merged.update(self._layer(resource_name, culture, set()))
        return merged

    def localize(self, resource_name: str, key: str, culture: str, **arguments: object) -> str:
        text = self.get_all_texts(resource_name, culture).get(key, key)
        if arguments:
            return text.format(**arguments)
        return text

    def clear(self) -> None:
        with self._lock:
            self._texts.clear()


def match_culture(value: str | None, supported: list[str]) -> str | None:
    candidate = (value or "").strip().replace("_", "-")
    if not candidate:
        return None
    lowered = candidate.lower()
    by_lower = {name.lower(): name for name in supported}
    if lowered in by_lower:
        return by_lower[lowered]
    alias = CULTURE_ALIASES.get(lowered)
    if alias and alias in supported:
        return alias
    language = lowered.split("-", 1)[0]
    if language in by_lower:
        return by_lower[language]
    alias = CULTURE_ALIASES.get(language)
    if alias and alias in supported:
        return alias
    return None


def parse_accept_language(header: str | None) -> list[str]:
    weighted: list[tuple[float, int, str]] = []
    for index, part in enumerate((header or "").split(",")):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip()
        if not tag or tag == "*":
            continue
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        if quality > 0:
            weighted.append((-quality, index, tag))
    return [tag for _, _, tag in sorted(weighted)]


def parse_culture_cookie(value: str | None) -> str | None:
    for part in (value or "").split("|"):
        key, _, culture = part.partition("=")
        if key.strip() in {"uic", "c"} and culture.strip():
            return culture.strip()
    return None


def resolve_request_culture(
    options: LocalizationOptions,
    *,
    query_culture: str | None = None,
    cookie_value: str | None = None,
    accept_language: str | None = None,
) -> str:
    supported = options.culture_names
    candidates = [query_culture, parse_culture_cookie(cookie_value), *parse_accept_language(accept_language)]
    for candidate in candidates:
        culture = match_culture(candidate, supported)
        if culture:
            return culture
    return options.default_culture
