from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ..core.entity_kinds import EntityKind
from .time_entry import TimeEntryOut


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class EntityRef(BaseModel):
    """What a timer is attached to; names are only used for activity wording."""

    id: int
    kind: EntityKind
    name: str = ""
    project_name: Optional[str] = None


class TimerStatus(BaseModel):
    entity: EntityRef
    state: TimerState
    entry: Optional[TimeEntryOut] = None
    elapsed_seconds: int
    elapsed_display: str
    pause_accumulated_seconds: float
    pause_started_at: Optional[datetime] = None


class StopTimerRequest(BaseModel):
    comment: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {"comment": "Fixed the login redirect"}
        }
    }
