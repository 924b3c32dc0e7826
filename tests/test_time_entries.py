"""Time entry crud helpers, manual logging and duration arithmetic."""

import asyncio
import os
import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi import BackgroundTasks
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from worktimer.core.entity_kinds import EntityKind, normalize_entity_kind
from worktimer.crud.owners import create_owner, get_owner_by_email, set_owner_active
from worktimer.crud.tasks import create_subtask, create_task, get_entity
from worktimer.crud.time_entries import (
    count_entries,
    create_entry,
    finalize_entry,
    find_open_entry,
    list_entries,
    list_running_entries,
    log_manual_entry,
)
from worktimer.db.session import Base, build_engine, make_session_factory
from worktimer.deps.auth import AuthContext
from worktimer.routers.api_time_entries import api_log_manual
from worktimer.schemas.time_entry import ManualTimeLogRequest
from worktimer.services.timecalc import (
    elapsed_seconds,
    format_clock,
    format_duration,
    format_hours,
    parse_iso,
    to_iso,
    working_minutes,
)

# Ensure models are registered so metadata tables are created
from worktimer.models import activity as activity_model  # noqa: F401
from worktimer.models import owner as owner_model  # noqa: F401
from worktimer.models import task as task_model  # noqa: F401
from worktimer.models import time_entry as time_entry_model  # noqa: F401

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def owner(db_session):
    return create_owner(db_session, {"email": "dana@example.com", "name": "Dana"})


@pytest.fixture()
def task(db_session):
    return create_task(db_session, {"name": "Write report", "project_name": "Quarterly close"})


def _entry(db, task, owner, start, **extra):
    payload = {
        "entity_id": task.id,
        "entity_kind": "task",
        "owner_id": owner.id,
        "start_time": start,
    }
    payload.update(extra)
    return create_entry(db, payload)


def test_find_open_entry_prefers_latest_start(db_session, task, owner):
    older = _entry(db_session, task, owner, T0)
    finalize_entry(db_session, older.id, T0 + timedelta(minutes=30), 30)
    latest = _entry(db_session, task, owner, T0 + timedelta(hours=1))

    found = find_open_entry(db_session, task.id, EntityKind.TASK)
    assert found.id == latest.id
    assert find_open_entry(db_session, task.id, "subtask") is None


def test_finalize_missing_entry_returns_none(db_session):
    assert finalize_entry(db_session, 999, T0, 5) is None


def test_finalize_clamps_and_last_write_wins(db_session, task, owner):
    entry = _entry(db_session, task, owner, T0)
    finalize_entry(db_session, entry.id, T0 + timedelta(minutes=10), -3, "first")
    again = finalize_entry(db_session, entry.id, T0 + timedelta(minutes=20), 20, "")

    assert again.duration_minutes == 20
    assert again.comment is None
    assert again.end_time == "2024-05-01T09:20:00.000Z"


def test_create_entry_validates_payload(db_session, task, owner):
    with pytest.raises(ValueError):
        create_entry(db_session, {"entity_id": task.id, "entity_kind": "task", "owner_id": owner.id})
    with pytest.raises(ValueError):
        _entry(db_session, task, owner, T0, duration_minutes=-1)
    with pytest.raises(ValueError):
        _entry(db_session, task, owner, T0, entity_kind="project")


def test_list_count_and_running(db_session, task, owner):
    closed = _entry(db_session, task, owner, T0)
    finalize_entry(db_session, closed.id, T0 + timedelta(minutes=15), 15)
    running = _entry(db_session, task, owner, T0 + timedelta(hours=2))

    entries = list_entries(db_session, entity_kind="task", entity_id=task.id)
    assert [entry.id for entry in entries] == [running.id, closed.id]
    assert count_entries(db_session, EntityKind.TASK, task.id) == 2
    assert count_entries(db_session, EntityKind.SUBTASK, task.id) == 0
    assert [entry.id for entry in list_running_entries(db_session)] == [running.id]


def test_log_manual_entry_starts_at_nine_local(db_session, task, owner):
    entry = log_manual_entry(
        db_session,
        {
            "entity_kind": EntityKind.TASK,
            "entity_id": task.id,
            "owner_id": owner.id,
            "hours": 1.51,
            "comment": "  Reviewed invoices ",
            "date": date(2024, 5, 1),
        },
        tz="Europe/Berlin",
    )

    assert entry.start_time == "2024-05-01T07:00:00.000Z"
    assert entry.duration_minutes == 90
    assert entry.comment == "Reviewed invoices"
    assert parse_iso(entry.end_time) - parse_iso(entry.start_time) == timedelta(hours=1.51)


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"hours": 0}, "hours"),
        ({"hours": "soon"}, "hours"),
        ({"comment": "   "}, "comment"),
        ({"date": None}, "date"),
    ],
)
def test_log_manual_entry_rejects_bad_input(db_session, task, owner, overrides, message):
    payload = {
        "entity_id": task.id,
        "owner_id": owner.id,
        "hours": 2,
        "comment": "Reviewed invoices",
        "date": "2024-05-01",
    }
    payload.update(overrides)
    with pytest.raises(ValueError, match=message):
        log_manual_entry(db_session, payload, tz="UTC")


def test_get_entity_resolves_tasks_and_subtasks(db_session, task):
    subtask = create_subtask(db_session, task, {"name": "Proofread"})

    assert get_entity(db_session, "task", task.id).name == "Write report"
    resolved = get_entity(db_session, EntityKind.SUBTASK, subtask.id)
    assert resolved.name == "Proofread"
    assert resolved.project_name == "Quarterly close"
    assert get_entity(db_session, "subtask", 999) is None


def test_owner_lookup_and_deactivation(db_session, owner):
    assert get_owner_by_email(db_session, "DANA@example.com").id == owner.id
    with pytest.raises(ValueError):
        create_owner(db_session, {"email": "Dana@Example.com"})

    set_owner_active(db_session, owner, False)
    assert get_owner_by_email(db_session, "dana@example.com") is None
    assert get_owner_by_email(db_session, "dana@example.com", active_only=False).id == owner.id


def test_normalize_entity_kind():
    assert normalize_entity_kind(" Subtask ") is EntityKind.SUBTASK
    assert normalize_entity_kind(EntityKind.TASK) is EntityKind.TASK
    with pytest.raises(ValueError):
        normalize_entity_kind("ticket")


@pytest.mark.parametrize(
    "elapsed, paused, expected",
    [
        (timedelta(seconds=150), 30, 2),
        (timedelta(seconds=59), 0, 0),
        (timedelta(minutes=61, seconds=59), 0, 61),
        (timedelta(minutes=5), 600, 0),
        (timedelta(seconds=-30), 0, 0),
    ],
)
def test_working_minutes(elapsed, paused, expected):
    assert working_minutes(T0, T0 + elapsed, paused) == expected


def test_elapsed_seconds_never_negative():
    assert elapsed_seconds(T0, T0 + timedelta(seconds=95), 20) == 75
    assert elapsed_seconds(T0, T0 - timedelta(seconds=5)) == 0


def test_formatting_helpers():
    assert format_duration(95) == "1h 35m"
    assert format_duration(5) == "5m"
    assert format_duration(None) == "0m"
    assert format_clock(3725) == "01:02:05"
    assert format_hours(1) == "1 hour"
    assert format_hours(1.5) == "1.5 hours"


def test_iso_round_trip_is_utc_millisecond():
    stamp = to_iso(datetime(2024, 5, 1, 11, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2))))
    assert stamp == "2024-05-01T09:00:00.123Z"
    assert parse_iso(stamp) == datetime(2024, 5, 1, 9, 0, 0, 123000, tzinfo=timezone.utc)
    assert parse_iso("") is None


def test_manual_log_event_waits_for_background_tasks(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'manual.db'}")
    Base.metadata.create_all(bind=engine)
    db = make_session_factory(engine)()
    recorded = []

    class Sink:
        def record(self, kind, payload):
            recorded.append((kind, payload["description"]))

    try:
        create_owner(db, {"email": "dana@example.com", "name": "Dana"})
        task = create_task(db, {"name": "Write report"})
        payload = ManualTimeLogRequest(
            entity_id=task.id, hours=2, comment="Reviewed invoices", date=date(2024, 5, 1)
        )
        request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(event_sink=Sink())))
        background = BackgroundTasks()

        async def scenario():
            entry = await api_log_manual(
                payload, request, background, AuthContext("dana@example.com", "open"), db
            )
            queued = list(recorded)
            await background()
            return entry, queued

        entry, queued = asyncio.run(scenario())
    finally:
        db.close()
        engine.dispose()

    assert entry.duration_minutes == 120
    assert queued == []
    assert recorded == [("logged_time", "Logged 2 hours on task: Write report")]
