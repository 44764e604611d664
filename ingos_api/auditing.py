from __future__ import annotations

import logging
import time
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

APPLICATION_NAME = "Ingos"
ALL_ENTITIES_SELECTOR = "all_entities"
READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

audit_logger = logging.getLogger("ingos.audit")

_current_scope: ContextVar["AuditLogScope | None"] = ContextVar("audit_log_scope", default=None)


@dataclass(frozen=True)
class EntityChange:
    entity_type: str
    entity_id: str
    change_type: str


@dataclass(frozen=True)
class EntityHistorySelector:
    name: str
    predicate: Callable[[str], bool]


class EntityHistorySelectorList:
    def __init__(self) -> None:
        self._selectors: list[EntityHistorySelector] = []

    def add(self, name: str, predicate: Callable[[str], bool]) -> None:
        self._selectors = [s for s in self._selectors if s.name != name]
        self._selectors.append(EntityHistorySelector(name=name, predicate=predicate))

    def add_all_entities(self) -> None:
        self.add(ALL_ENTITIES_SELECTOR, lambda _entity_type: True)

    def names(self) -> list[str]:
        return [s.name for s in self._selectors]

    def is_selected(self, entity_type: str) -> bool:
        return any(s.predicate(entity_type) for s in self._selectors)


@dataclass
class AuditingOptions:
    application_name: str | None = None
    is_enabled: bool = True
    is_enabled_for_get_requests: bool = False
    always_log_on_exception: bool = True
    entity_history_selectors: EntityHistorySelectorList = field(default_factory=EntityHistorySelectorList)

    def should_save(self, scope: "AuditLogScope") -> bool:
        if scope.exceptions and self.always_log_on_exception:
            return True
        if scope.http_method.upper() in READ_METHODS and not self.is_enabled_for_get_requests:
            return False
        return True


def configure_auditing() -> AuditingOptions:
    options = AuditingOptions(application_name=APPLICATION_NAME)
    options.entity_history_selectors.add_all_entities()
    return options


@dataclass
class AuditLogScope:
    options: AuditingOptions
    http_method: str
    url: str
    correlation_id: str | None = None
    client_ip: str | None = None
    user_id: str | None = None
    started: float = field(default_factory=time.perf_counter)
    entity_changes: list[EntityChange] = field(default_factory=list)
    exceptions: list[str] = field(default_factory=list)

    def add_entity_change(self, change: EntityChange) -> bool:
        if not self.options.entity_history_selectors.is_selected(change.entity_type):
            return False
        self.entity_changes.append(change)
        return True

    def add_exception(self, exc: BaseException) -> None:
        self.exceptions.append(f"{type(exc).__name__}: {exc}")

    def to_payload(self, *, status_code: int | None) -> dict[str, Any]:
        return {
            "application_name": self.options.application_name,
            "user_id": self.user_id,
            "correlation_id": self.correlation_id,
            "client_ip": self.client_ip,
            "http_method": self.http_method,
            "url": self.url,
            "http_status_code": status_code,
            "execution_duration_ms": round((time.perf_counter() - self.started) * 1000, 2),
            "exceptions": list(self.exceptions),
            "entity_changes": [
                {"entity_type": c.entity_type, "entity_id": c.entity_id, "change_type": c.change_type}
                for c in self.entity_changes
            ],
        }


def current_audit_scope() -> AuditLogScope | None:
    return _current_scope.get()


def begin_audit_scope(scope: AuditLogScope):
    return _current_scope.set(scope)


def end_audit_scope(token) -> None:
    _current_scope.reset(token)


def write_audit_log(scope: AuditLogScope, *, status_code: int | None) -> dict[str, Any]:
    payload = scope.to_payload(status_code=status_code)
    if scope.exceptions or (status_code is not None and status_code >= 500):
        audit_logger.warning("audit_log", extra={"audit": payload})
    else:
        audit_logger.info("audit_log", extra={"audit": payload})
    return payload
