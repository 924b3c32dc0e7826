from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..core.entity_kinds import EntityKind
from ..core.errors import OwnerNotFound
from ..crud.owners import get_owner_by_email
from ..crud.tasks import get_entity
from ..crud.time_entries import (
    count_entries,
    delete_entry,
    get_entry,
    list_entries,
    list_running_entries,
    log_manual_entry,
)
from ..db.session import get_db
from ..deps.auth import AuthContext, require_api_access, require_identity
from ..schemas.time_entry import ManualTimeLogRequest, TimeEntryCount, TimeEntryOut
from ..schemas.timer import EntityRef
from ..services.activity import deliver, time_logged_event
from ..services.timecalc import format_hours

router = APIRouter(prefix="/api/v1/time-entries", tags=["time-entries"])


@router.get("", response_model=list[TimeEntryOut], dependencies=[Depends(require_api_access)])
def api_list(
    entity_kind: EntityKind | None = Query(default=None),
    entity_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return list_entries(db, entity_kind=entity_kind, entity_id=entity_id, limit=limit, offset=offset)


@router.get("/running", response_model=list[TimeEntryOut], dependencies=[Depends(require_api_access)])
def api_list_running(db: Session = Depends(get_db)):
    return list_running_entries(db)


@router.get("/count", response_model=TimeEntryCount, dependencies=[Depends(require_api_access)])
def api_count(
    entity_kind: EntityKind = Query(...),
    entity_id: int = Query(...),
    db: Session = Depends(get_db),
):
    return TimeEntryCount(
        entity_kind=entity_kind,
        entity_id=entity_id,
        count=count_entries(db, entity_kind, entity_id),
    )


@router.post("/manual", response_model=TimeEntryOut, status_code=201)
async def api_log_manual(
    payload: ManualTimeLogRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    auth: AuthContext = Depends(require_identity),
    db: Session = Depends(get_db),
):
    owner = await run_in_threadpool(get_owner_by_email, db, auth.identity)
    if owner is None:
        raise OwnerNotFound(details={"identity": auth.identity})
    entity = await run_in_threadpool(get_entity, db, payload.entity_kind, payload.entity_id)
    if entity is None:
        raise HTTPException(404, f"{payload.entity_kind.value.capitalize()} not found")
    data = payload.model_dump()
    data["owner_id"] = owner.id
    try:
        entry = await run_in_threadpool(log_manual_entry, db, data)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    sink = getattr(request.app.state, "event_sink", None)
    if sink is not None:
        ref = EntityRef(
            id=entity.id,
            kind=payload.entity_kind,
            name=entity.name,
            project_name=entity.project_name,
        )
        event = time_logged_event(ref, format_hours(payload.hours), entry.comment, owner.id)
        # Delivered after the response is sent.
        background_tasks.add_task(deliver, sink, *event)
    return entry


@router.get("/{entry_id}", response_model=TimeEntryOut, dependencies=[Depends(require_api_access)])
def api_get(entry_id: int, db: Session = Depends(get_db)):
    entry = get_entry(db, entry_id)
    if not entry:
        raise HTTPException(404, "Not found")
    return entry


@router.delete("/{entry_id}", dependencies=[Depends(require_api_access)])
def api_delete(entry_id: int, db: Session = Depends(get_db)):
    entry = get_entry(db, entry_id)
    if not entry:
        raise HTTPException(404, "Not found")
    delete_entry(db, entry)
    return {"status": "deleted"}
