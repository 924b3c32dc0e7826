from __future__ import annotations

from sqlalchemy import desc, select
from sqlalchemy.orm import Session, selectinload

from ..core.entity_kinds import EntityKind, normalize_entity_kind
from ..models.task import Subtask, Task
from ..services.timecalc import to_iso, utcnow


def list_tasks(db: Session, limit: int = 200, offset: int = 0):
    stmt = (
        select(Task)
        .options(selectinload(Task.subtasks))
        .order_by(desc(Task.created_at))
        .limit(limit)
        .offset(offset)
    )
    return db.execute(stmt).scalars().all()


def get_task(db: Session, task_id: int) -> Task | None:
    stmt = select(Task).options(selectinload(Task.subtasks)).where(Task.id == task_id)
    return db.execute(stmt).scalars().first()


def get_subtask(db: Session, subtask_id: int) -> Subtask | None:
    stmt = select(Subtask).options(selectinload(Subtask.task)).where(Subtask.id == subtask_id)
    return db.execute(stmt).scalars().first()


def get_entity(db: Session, entity_kind: EntityKind | str, entity_id: int) -> Task | Subtask | None:
    if normalize_entity_kind(entity_kind) is EntityKind.SUBTASK:
        return get_subtask(db, entity_id)
    return get_task(db, entity_id)


def create_task(db: Session, payload: dict) -> Task:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    task = Task(
        name=name,
        project_name=(payload.get("project_name") or "").strip() or None,
        created_at=to_iso(utcnow()),
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def create_subtask(db: Session, task: Task, payload: dict) -> Subtask:
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    subtask = Subtask(task_id=task.id, name=name, created_at=to_iso(utcnow()))
    db.add(subtask)
    db.commit()
    db.refresh(subtask)
    return subtask
