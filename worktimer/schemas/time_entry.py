from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.entity_kinds import EntityKind


class TimeEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_id: int
    entity_kind: EntityKind
    owner_id: int
    start_time: dt.datetime
    end_time: Optional[dt.datetime] = None
    duration_minutes: Optional[int] = None
    comment: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None


class ManualTimeLogRequest(BaseModel):
    entity_kind: EntityKind = EntityKind.TASK
    entity_id: int
    hours: float = Field(..., gt=0, le=24)
    comment: str = Field(..., min_length=1)
    date: dt.date

    model_config = {
        "json_schema_extra": {
            "example": {
                "entity_kind": "task",
                "entity_id": 7,
                "hours": 1.5,
                "comment": "Reviewed the quarterly invoices",
                "date": "2024-05-01",
            }
        }
    }


class TimeEntryCount(BaseModel):
    entity_kind: EntityKind
    entity_id: int
    count: int
