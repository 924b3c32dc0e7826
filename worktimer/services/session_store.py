"""Record store used by timer sessions.

``SessionStore`` is the contract a :class:`~worktimer.services.timer.TimerSession`
depends on. ``SqlSessionStore`` is the production implementation: it runs the
synchronous crud helpers in Starlette's threadpool so a timer never blocks the
event loop on the database, and translates SQLAlchemy failures into the timer
error taxonomy.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Protocol, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.entity_kinds import EntityKind
from ..core.errors import NotFound, PersistenceError
from ..crud import owners as owners_crud
from ..crud import time_entries as entries_crud
from ..schemas.time_entry import TimeEntryOut

logger = logging.getLogger("worktimer.store")

T = TypeVar("T")


class SessionStore(Protocol):
    async def resolve_owner(self, identity: str) -> int | None:
        """Owner id for a caller identity (an email), or ``None``."""

    async def find_open_entry(self, entity_id: int, entity_kind: EntityKind) -> TimeEntryOut | None:
        """Most recently started entry without an end time, if any."""

    async def create_entry(self, fields: dict[str, Any]) -> TimeEntryOut:
        """Insert an entry. Raises ``PersistenceError`` when rejected."""

    async def finalize_entry(
        self,
        entry_id: int,
        end_time: datetime,
        duration_minutes: int,
        comment: str | None,
    ) -> TimeEntryOut:
        """Close an entry. Raises ``NotFound`` or ``PersistenceError``."""


class SqlSessionStore:
    """``SessionStore`` over a SQLAlchemy session factory."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        def _call() -> T:
            db = self._session_factory()
            try:
                return fn(db)
            except SQLAlchemyError:
                db.rollback()
                raise
            finally:
                db.close()

        try:
            return await run_in_threadpool(_call)
        except IntegrityError as exc:
            logger.error(
                "store.conflict",
                exc_info=True,
                extra={"extra_data": {"operation": operation}},
            )
            raise PersistenceError(
                "An open time entry already exists for this item",
                details={"operation": operation},
            ) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "store.failure",
                exc_info=True,
                extra={"extra_data": {"operation": operation}},
            )
            raise PersistenceError(details={"operation": operation}) from exc

    async def resolve_owner(self, identity: str) -> int | None:
        def _lookup(db: Session) -> int | None:
            owner = owners_crud.get_owner_by_email(db, identity)
            return owner.id if owner else None

        return await self._run("resolve_owner", _lookup)

    async def find_open_entry(self, entity_id: int, entity_kind: EntityKind) -> TimeEntryOut | None:
        def _find(db: Session) -> TimeEntryOut | None:
            entry = entries_crud.find_open_entry(db, entity_id, entity_kind)
            return TimeEntryOut.model_validate(entry) if entry else None

        return await self._run("find_open_entry", _find)

    async def create_entry(self, fields: dict[str, Any]) -> TimeEntryOut:
        def _create(db: Session) -> TimeEntryOut:
            return TimeEntryOut.model_validate(entries_crud.create_entry(db, fields))

        try:
            return await self._run("create_entry", _create)
        except ValueError as exc:
            raise PersistenceError(str(exc)) from exc

    async def finalize_entry(
        self,
        entry_id: int,
        end_time: datetime,
        duration_minutes: int,
        comment: str | None,
    ) -> TimeEntryOut:
        def _finalize(db: Session) -> TimeEntryOut | None:
            entry = entries_crud.finalize_entry(db, entry_id, end_time, duration_minutes, comment)
            return TimeEntryOut.model_validate(entry) if entry else None

        result = await self._run("finalize_entry", _finalize)
        if result is None:
            raise NotFound(details={"entry_id": entry_id})
        return result
