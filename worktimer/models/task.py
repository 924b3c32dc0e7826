"""Tasks and subtasks: the entities a timer is attached to."""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base


class Task(Base):
    __tablename__ = "tasks"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    project_name = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    subtasks = relationship("Subtask", back_populates="task", cascade="all, delete-orphan")


class Subtask(Base):
    __tablename__ = "subtasks"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    name = Column(Text, nullable=False)
    created_at = Column(Text, nullable=False)

    task = relationship("Task", back_populates="subtasks")

    @property
    def project_name(self) -> str | None:
        return self.task.project_name if self.task else None


__all__ = ["Subtask", "Task"]
