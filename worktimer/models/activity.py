"""SQLAlchemy model for the activity feed (audit history of timer events)."""

from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class ActivityEntry(Base):
    __tablename__ = "activity_feed"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, nullable=True, index=True)
    action_type = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)
    entity_name = Column(Text, nullable=True)
    description = Column(Text, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)


__all__ = ["ActivityEntry"]
