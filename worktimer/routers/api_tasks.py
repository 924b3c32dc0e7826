from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..crud.tasks import create_subtask, create_task, get_task, list_tasks
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.task import SubtaskCreate, SubtaskOut, TaskCreate, TaskOut

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"], dependencies=[Depends(require_api_access)])


@router.get("", response_model=list[TaskOut])
def api_list(db: Session = Depends(get_db)):
    return list_tasks(db)


@router.post("", response_model=TaskOut, status_code=201)
def api_create(payload: TaskCreate, db: Session = Depends(get_db)):
    try:
        return create_task(db, payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/{task_id}", response_model=TaskOut)
def api_get(task_id: int, db: Session = Depends(get_db)):
    task = get_task(db, task_id)
    if not task:
        raise HTTPException(404, "Not found")
    return task


@router.post("/{task_id}/subtasks", response_model=SubtaskOut, status_code=201)
def api_create_subtask(task_id: int, payload: SubtaskCreate, db: Session = Depends(get_db)):
    task = get_task(db, task_id)
    if not task:
        raise HTTPException(404, "Not found")
    try:
        return create_subtask(db, task, payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
