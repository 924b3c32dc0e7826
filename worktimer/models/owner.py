"""SQLAlchemy model for the people who own time entries."""

from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class Owner(Base):
    __tablename__ = "owners"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, index=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    name = Column(Text, nullable=True)
    active = Column(Integer, nullable=False, default=1)
    created_at = Column(Text, nullable=False)


__all__ = ["Owner"]
