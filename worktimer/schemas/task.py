from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1)
    project_name: Optional[str] = None


class SubtaskCreate(BaseModel):
    name: str = Field(..., min_length=1)


class SubtaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    name: str
    created_at: str


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    project_name: Optional[str] = None
    created_at: str
    subtasks: list[SubtaskOut] = Field(default_factory=list)
