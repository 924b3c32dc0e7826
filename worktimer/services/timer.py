"""Timer session: the start/pause/resume/stop lifecycle for one entity.

A session is created per (entity, caller) with :meth:`TimerSession.open`,
which adopts any open entry already stored for the entity. Only ``start`` and
``stop`` reach the store; pausing is bookkeeping held by the session, so a
session rebuilt from storage always comes back running with no pause history.

Activity events are dispatched as detached tasks. A failing or slow sink is
logged and otherwise ignored.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from ..core.errors import InvalidTransition, OwnerNotFound, TimerError
from ..schemas.time_entry import TimeEntryOut
from ..schemas.timer import EntityRef, TimerState, TimerStatus
from .activity import EventSink, deliver, time_logged_event, timer_started_event, timer_stopped_event
from .session_store import SessionStore
from .timecalc import elapsed_seconds as compute_elapsed, format_clock, format_duration, utcnow, working_minutes

logger = logging.getLogger("worktimer.timer")

Clock = Callable[[], datetime]
TimerListener = Callable[["TimerSession"], None]


class TimerSession:
    def __init__(
        self,
        entity: EntityRef,
        identity: str,
        store: SessionStore,
        events: EventSink | None = None,
        *,
        clock: Clock = utcnow,
        tick_seconds: float = 1.0,
    ) -> None:
        self.entity = entity
        self.identity = identity
        self.state = TimerState.IDLE
        self.entry: TimeEntryOut | None = None
        self.pause_accumulated_seconds = 0.0
        self.pause_started_at: datetime | None = None

        self._store = store
        self._events = events
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._owner_id: int | None = None
        self._frozen_elapsed = 0
        self._busy = False
        self._closed = False
        self._tick_task: asyncio.Task | None = None
        self._pending_events: set[asyncio.Task] = set()
        self._listeners: list[TimerListener] = []

    @classmethod
    async def open(
        cls,
        entity: EntityRef,
        identity: str,
        store: SessionStore,
        events: EventSink | None = None,
        **kwargs: Any,
    ) -> "TimerSession":
        session = cls(entity, identity, store, events, **kwargs)
        await session.reconcile()
        return session

    # ---- state machine

    async def reconcile(self) -> None:
        """Adopt the entity's open entry from the store, if there is one."""
        self._require((TimerState.IDLE,), "reconcile")
        self._busy = True
        try:
            found = await self._store.find_open_entry(self.entity.id, self.entity.kind)
        finally:
            self._busy = False
        if found is None:
            return
        self.entry = found
        self._owner_id = found.owner_id
        self._reset_pause()
        self._set_state(TimerState.RUNNING)
        logger.info("timer.adopted", extra={"extra_data": self._log_context()})

    async def start(self) -> int:
        """Create the backing entry and start running. Returns the entry id."""
        self._require((TimerState.IDLE,), "start")
        self._busy = True
        try:
            owner_id = await self._store.resolve_owner(self.identity)
            if owner_id is None:
                raise OwnerNotFound(details={"identity": self.identity})
            entry = await self._store.create_entry(
                {
                    "entity_id": self.entity.id,
                    "entity_kind": self.entity.kind,
                    "owner_id": owner_id,
                    "start_time": self._clock(),
                }
            )
        finally:
            self._busy = False

        self._owner_id = owner_id
        self.entry = entry
        self._reset_pause()
        self._set_state(TimerState.RUNNING)
        logger.info("timer.started", extra={"extra_data": self._log_context()})
        self._emit(*timer_started_event(self.entity, owner_id))
        return entry.id

    def pause(self) -> None:
        self._require((TimerState.RUNNING,), "pause")
        now = self._clock()
        self._frozen_elapsed = compute_elapsed(self.entry.start_time, now, self.pause_accumulated_seconds)
        self.pause_started_at = now
        self._set_state(TimerState.PAUSED)
        logger.info("timer.paused", extra={"extra_data": self._log_context()})

    def resume(self) -> None:
        self._require((TimerState.PAUSED,), "resume")
        if self.pause_started_at is None:
            raise InvalidTransition("Timer has no pause start recorded", details=self._log_context())
        gap = (self._clock() - self.pause_started_at).total_seconds()
        self.pause_accumulated_seconds += max(gap, 0.0)
        self.pause_started_at = None
        self._set_state(TimerState.RUNNING)
        logger.info("timer.resumed", extra={"extra_data": self._log_context()})

    async def stop(self, comment: str | None = None) -> TimeEntryOut:
        """Finalize the entry with the worked minutes and return to idle.

        If the store rejects the write the session keeps its current state
        and the error propagates.
        """
        self._require((TimerState.RUNNING, TimerState.PAUSED), "stop")
        entry = self.entry
        end_time = self._clock()
        duration = working_minutes(entry.start_time, end_time, self.total_paused_seconds(end_time))
        note = comment if comment and comment.strip() else None

        self._busy = True
        try:
            finalized = await self._store.finalize_entry(entry.id, end_time, duration, note)
        except TimerError as exc:
            logger.error(
                "timer.stop_failed",
                extra={"extra_data": {**self._log_context(), "error": exc.code}},
            )
            raise
        finally:
            self._busy = False

        owner_id = self._owner_id if self._owner_id is not None else entry.owner_id
        context = self._log_context()
        self._owner_id = None
        self.entry = None
        self._reset_pause()
        self._set_state(TimerState.IDLE)
        logger.info("timer.stopped", extra={"extra_data": {**context, "duration_minutes": duration}})

        duration_text = format_duration(duration)
        self._emit(*time_logged_event(self.entity, duration_text, finalized.comment, owner_id))
        self._emit(*timer_stopped_event(self.entity, duration_text, owner_id))
        return finalized

    # ---- derived values

    def total_paused_seconds(self, at: datetime | None = None) -> float:
        """Accumulated pause time, including the pause in progress."""
        total = self.pause_accumulated_seconds
        if self.state is TimerState.PAUSED and self.pause_started_at is not None:
            now = at if at is not None else self._clock()
            total += max((now - self.pause_started_at).total_seconds(), 0.0)
        return total

    def elapsed_seconds(self) -> int:
        """Display value only. Frozen while paused, zero while idle."""
        if self.state is TimerState.RUNNING and self.entry is not None:
            return compute_elapsed(self.entry.start_time, self._clock(), self.pause_accumulated_seconds)
        if self.state is TimerState.PAUSED:
            return self._frozen_elapsed
        return 0

    def snapshot(self) -> TimerStatus:
        elapsed = self.elapsed_seconds()
        return TimerStatus(
            entity=self.entity,
            state=self.state,
            entry=self.entry,
            elapsed_seconds=elapsed,
            elapsed_display=format_clock(elapsed),
            pause_accumulated_seconds=self.pause_accumulated_seconds,
            pause_started_at=self.pause_started_at,
        )

    # ---- subscriptions and lifecycle

    def subscribe(self, listener: TimerListener) -> Callable[[], None]:
        """Call ``listener`` on every transition and every tick while running.

        The tick task only runs while at least one listener is subscribed.
        """
        self._listeners.append(listener)
        if self.state is TimerState.RUNNING:
            self._start_ticker()

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
            if not self._listeners:
                self._stop_ticker()

        return _unsubscribe

    @property
    def busy(self) -> bool:
        """True while start, stop or reconcile is waiting on the store."""
        return self._busy

    @property
    def ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    async def flush_events(self) -> None:
        """Wait for every dispatched activity event to finish delivering."""
        while self._pending_events:
            await asyncio.gather(*list(self._pending_events), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        self._stop_ticker()
        self._listeners.clear()
        await self.flush_events()

    # ---- internals

    def _require(self, allowed: Iterable[TimerState], operation: str) -> None:
        if self._busy:
            raise InvalidTransition(
                f"Cannot {operation}: another timer operation is in progress",
                details={"operation": operation, "state": self.state.value},
            )
        if self.state not in allowed:
            raise InvalidTransition(
                f"Cannot {operation} a timer that is {self.state.value}",
                details={"operation": operation, "state": self.state.value},
            )

    def _reset_pause(self) -> None:
        self.pause_accumulated_seconds = 0.0
        self.pause_started_at = None
        self._frozen_elapsed = 0

    def _set_state(self, state: TimerState) -> None:
        self.state = state
        if state is TimerState.RUNNING:
            self._start_ticker()
        else:
            self._stop_ticker()
        self._notify()

    def _start_ticker(self) -> None:
        # Ticks only matter to subscribers.
        if self.ticking or self._closed or not self._listeners:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # pause()/resume() may be driven outside any loop; the display
            # value is still computed on demand.
            return
        self._tick_task = loop.create_task(self._tick())

    def _stop_ticker(self) -> None:
        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done():
            task.cancel()

    async def _tick(self) -> None:
        while self.state is TimerState.RUNNING:
            await asyncio.sleep(self._tick_seconds)
            if self.state is not TimerState.RUNNING:
                break
            self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.warning("timer.listener_failed", exc_info=True, extra={"extra_data": self._log_context()})

    def _emit(self, kind: str, payload: dict[str, Any]) -> None:
        if self._events is None:
            return
        task = asyncio.get_running_loop().create_task(deliver(self._events, kind, payload))
        self._pending_events.add(task)
        task.add_done_callback(self._pending_events.discard)

    def _log_context(self) -> dict[str, Any]:
        return {
            "entity": f"{self.entity.kind.value}:{self.entity.id}",
            "entry_id": self.entry.id if self.entry else None,
            "state": self.state.value,
        }


__all__ = ["Clock", "TimerListener", "TimerSession"]
