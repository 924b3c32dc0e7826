from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.entity_kinds import EntityKind
from ..core.errors import NotFound
from ..crud.tasks import get_entity
from ..db.session import get_db
from ..deps.auth import AuthContext, require_identity
from ..schemas.timer import EntityRef, StopTimerRequest, TimerStatus
from ..services.registry import TimerRegistry
from ..services.timer import TimerSession

router = APIRouter(prefix="/api/v1/timers", tags=["timers"])


def get_registry(request: Request) -> TimerRegistry:
    return request.app.state.timer_registry


async def _entity_ref(db: Session, entity_kind: EntityKind, entity_id: int) -> EntityRef:
    entity = await run_in_threadpool(get_entity, db, entity_kind, entity_id)
    if entity is None:
        raise HTTPException(404, f"{entity_kind.value.capitalize()} not found")
    return EntityRef(
        id=entity.id,
        kind=entity_kind,
        name=entity.name,
        project_name=entity.project_name,
    )


@asynccontextmanager
async def _timer(
    entity_kind: EntityKind,
    entity_id: int,
    auth: AuthContext,
    registry: TimerRegistry,
    db: Session,
) -> AsyncIterator[TimerSession]:
    entity = await _entity_ref(db, entity_kind, entity_id)
    session = await registry.get(entity, auth.identity)
    try:
        yield session
    except NotFound:
        # The entry is gone; the next request starts from the store again.
        registry.discard(session)
        raise
    finally:
        registry.release(session)


@router.get("/{entity_kind}/{entity_id}", response_model=TimerStatus)
async def api_timer_status(
    entity_kind: EntityKind,
    entity_id: int,
    auth: AuthContext = Depends(require_identity),
    registry: TimerRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    async with _timer(entity_kind, entity_id, auth, registry, db) as session:
        return session.snapshot()


@router.post("/{entity_kind}/{entity_id}/start", response_model=TimerStatus)
async def api_timer_start(
    entity_kind: EntityKind,
    entity_id: int,
    auth: AuthContext = Depends(require_identity),
    registry: TimerRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    async with _timer(entity_kind, entity_id, auth, registry, db) as session:
        await session.start()
        return session.snapshot()


@router.post("/{entity_kind}/{entity_id}/pause", response_model=TimerStatus)
async def api_timer_pause(
    entity_kind: EntityKind,
    entity_id: int,
    auth: AuthContext = Depends(require_identity),
    registry: TimerRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    async with _timer(entity_kind, entity_id, auth, registry, db) as session:
        session.pause()
        return session.snapshot()


@router.post("/{entity_kind}/{entity_id}/resume", response_model=TimerStatus)
async def api_timer_resume(
    entity_kind: EntityKind,
    entity_id: int,
    auth: AuthContext = Depends(require_identity),
    registry: TimerRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    async with _timer(entity_kind, entity_id, auth, registry, db) as session:
        session.resume()
        return session.snapshot()


@router.post("/{entity_kind}/{entity_id}/stop", response_model=TimerStatus)
async def api_timer_stop(
    entity_kind: EntityKind,
    entity_id: int,
    payload: StopTimerRequest | None = Body(default=None),
    auth: AuthContext = Depends(require_identity),
    registry: TimerRegistry = Depends(get_registry),
    db: Session = Depends(get_db),
):
    async with _timer(entity_kind, entity_id, auth, registry, db) as session:
        finalized = await session.stop(payload.comment if payload else None)
        status = session.snapshot()
    status.entry = finalized
    return status
