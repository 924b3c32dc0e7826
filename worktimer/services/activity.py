"""Activity events emitted by timers and the sinks that receive them.

Events are ``(kind, payload)`` pairs. The payload always carries
``entity_id``, ``entity_kind``, ``entity_name``, ``description`` and
``comment``; stop events add ``duration``. Sinks are best-effort: the timer
that emits an event never waits on, or fails because of, a sink.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Protocol

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..crud.activity import record_activity
from ..schemas.timer import EntityRef

logger = logging.getLogger("worktimer.activity")

TIMER_STARTED = "timer_started"
TIMER_STOPPED = "timer_stopped"
LOGGED_TIME = "logged_time"

Event = tuple[str, dict[str, Any]]


class EventSink(Protocol):
    def record(self, kind: str, payload: dict[str, Any]) -> Awaitable[None] | None:
        ...


def _project_comment(entity: EntityRef) -> str | None:
    return f"Project: {entity.project_name}" if entity.project_name else None


def _base_payload(entity: EntityRef, description: str, comment: str | None, owner_id: int | None) -> dict[str, Any]:
    return {
        "entity_id": entity.id,
        "entity_kind": entity.kind.value,
        "entity_name": entity.name,
        "description": description,
        "comment": comment,
        "owner_id": owner_id,
    }


def timer_started_event(entity: EntityRef, owner_id: int | None = None) -> Event:
    description = f"Started timer for {entity.kind.value}: {entity.name}"
    return TIMER_STARTED, _base_payload(entity, description, _project_comment(entity), owner_id)


def time_logged_event(
    entity: EntityRef,
    duration: str,
    comment: str | None = None,
    owner_id: int | None = None,
) -> Event:
    description = f"Logged {duration} on {entity.kind.value}: {entity.name}"
    payload = _base_payload(entity, description, comment or _project_comment(entity), owner_id)
    payload["duration"] = duration
    return LOGGED_TIME, payload


def timer_stopped_event(entity: EntityRef, duration: str, owner_id: int | None = None) -> Event:
    description = f"Stopped timer for {entity.kind.value}: {entity.name} ({duration})"
    payload = _base_payload(entity, description, _project_comment(entity), owner_id)
    payload["duration"] = duration
    return TIMER_STOPPED, payload


class ActivityFeedSink:
    """Persist events as rows of the ``activity_feed`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _write(self, kind: str, payload: dict[str, Any]) -> None:
        db = self._session_factory()
        try:
            record_activity(
                db,
                {
                    "owner_id": payload.get("owner_id"),
                    "action_type": kind,
                    "entity_type": payload["entity_kind"],
                    "entity_id": payload["entity_id"],
                    "entity_name": payload.get("entity_name"),
                    "description": payload["description"],
                    "comment": payload.get("comment"),
                },
            )
        finally:
            db.close()

    async def record(self, kind: str, payload: dict[str, Any]) -> None:
        await run_in_threadpool(self._write, kind, payload)


class LoggingEventSink:
    """Send events to the log only."""

    def record(self, kind: str, payload: dict[str, Any]) -> None:
        logger.info(kind, extra={"extra_data": {"event": kind, **payload}})


async def deliver(sink: EventSink, kind: str, payload: dict[str, Any]) -> bool:
    """Hand one event to ``sink``. Failures are logged, never raised."""
    try:
        result = sink.record(kind, payload)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.warning(
            "activity.delivery_failed",
            exc_info=True,
            extra={"extra_data": {"event": kind, "entity": f"{payload.get('entity_kind')}:{payload.get('entity_id')}"}},
        )
        return False
    return True
