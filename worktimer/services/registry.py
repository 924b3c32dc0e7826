"""Per-process registry of active timer sessions, one per (entity, caller).

Only sessions with a running or paused timer are kept. Every lookup checks
the held session against the store first, so an entry that was deleted or
finalized elsewhere replaces the session with a freshly reconciled one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..schemas.timer import EntityRef, TimerState
from .activity import EventSink
from .session_store import SessionStore
from .timer import TimerSession

logger = logging.getLogger("worktimer.registry")

SessionKey = tuple[str, int, str]


class TimerRegistry:
    def __init__(self, store: SessionStore, events: EventSink | None = None, **session_options: Any) -> None:
        self._store = store
        self._events = events
        self._session_options = session_options
        self._sessions: dict[SessionKey, TimerSession] = {}
        self._retiring: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    @staticmethod
    def key(entity: EntityRef, identity: str) -> SessionKey:
        return entity.kind.value, entity.id, identity.strip().casefold()

    def peek(self, entity: EntityRef, identity: str) -> TimerSession | None:
        return self._sessions.get(self.key(entity, identity))

    async def get(self, entity: EntityRef, identity: str) -> TimerSession:
        """Return the caller's session for ``entity``, reconciled with the store."""
        key = self.key(entity, identity)
        async with self._lock:
            session = self._sessions.get(key)
            if session is not None and not session.busy and not await self._matches_store(session):
                logger.info(
                    "timer.session_stale",
                    extra={"extra_data": {"entity": f"{entity.kind.value}:{entity.id}", "state": session.state.value}},
                )
                self._drop(key, session)
                session = None
            if session is None:
                session = await TimerSession.open(
                    entity, identity, self._store, self._events, **self._session_options
                )
                self._sessions[key] = session
            else:
                # Names may have changed since the session was opened.
                session.entity = entity
            return session

    def release(self, session: TimerSession) -> None:
        """Forget ``session`` once it is idle; a later ``get`` reopens from the store."""
        if session.state is TimerState.IDLE and not session.busy:
            self._drop(self.key(session.entity, session.identity), session)

    def discard(self, session: TimerSession) -> None:
        """Forget ``session`` regardless of its state."""
        self._drop(self.key(session.entity, session.identity), session)

    async def _matches_store(self, session: TimerSession) -> bool:
        found = await self._store.find_open_entry(session.entity.id, session.entity.kind)
        if session.state is TimerState.IDLE:
            return found is None
        return found is not None and session.entry is not None and found.id == session.entry.id

    def _drop(self, key: SessionKey, session: TimerSession) -> None:
        if self._sessions.get(key) is not session:
            return
        del self._sessions[key]
        # Keep a reference until queued activity events are delivered.
        task = asyncio.get_running_loop().create_task(session.close())
        self._retiring.add(task)
        task.add_done_callback(self._retiring.discard)

    def __len__(self) -> int:
        return len(self._sessions)

    async def aclose(self) -> None:
        sessions, self._sessions = list(self._sessions.values()), {}
        await asyncio.gather(*(session.close() for session in sessions), return_exceptions=True)
        while self._retiring:
            await asyncio.gather(*list(self._retiring), return_exceptions=True)
