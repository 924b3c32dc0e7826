from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OwnerCreate(BaseModel):
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    name: Optional[str] = None


class OwnerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: Optional[str] = None
    active: bool
    created_at: str
