"""Request-scoped unit of work.

One ``UnitOfWork`` is created per request by the pipeline. The database
connection and its transaction are opened lazily on first use, so requests
that never touch the database never check a connection out of the pool.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request
from sqlalchemy.engine import Connection, Engine

from ingos_api.auditing import EntityChange, current_audit_scope

logger = logging.getLogger("ingos.uow")


@dataclass
class UnitOfWork:
    engine: Engine
    _connection: Connection | None = field(default=None, init=False)
    _transaction: Any = field(default=None, init=False)
    completed: bool = field(default=False, init=False)

    @property
    def is_active(self) -> bool:
        return self._connection is not None and not self.completed

    @property
    def connection(self) -> Connection:
        if self.completed:
            raise RuntimeError("Unit of work has already completed.")
        if self._connection is None:
            self._connection = self.engine.connect()
            self._transaction = self._connection.begin()
        return self._connection

    def record_entity_change(self, entity_type: str, entity_id: Any, change_type: str) -> None:
        scope = current_audit_scope()
        if scope is None:
            return
        scope.add_entity_change(EntityChange(entity_type=entity_type, entity_id=str(entity_id), change_type=change_type))

    def commit(self) -> None:
        if self.completed:
            return
        self.completed = True
        if self._connection is None:
            return
        try:
            self._transaction.commit()
        finally:
            self._connection.close()

    def rollback(self) -> None:
        if self.completed:
            return
        self.completed = True
        if self._connection is None:
            return
        try:
            self._transaction.rollback()
        finally:
            self._connection.close()


def get_unit_of_work(request: Request) -> UnitOfWork:
    uow = getattr(request.state, "unit_of_work", None)
    if uow is None:
        raise RuntimeError("Unit of work middleware is not registered.")
    return uow
