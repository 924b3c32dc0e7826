from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ActivityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: Optional[int] = None
    action_type: str
    entity_type: str
    entity_id: int
    entity_name: Optional[str] = None
    description: str
    comment: Optional[str] = None
    created_at: str
