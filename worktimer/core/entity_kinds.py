"""Kinds of entity a timer can be attached to."""

from __future__ import annotations

from enum import Enum


class EntityKind(str, Enum):
    TASK = "task"
    SUBTASK = "subtask"


ENTITY_KIND_CHOICES = tuple(kind.value for kind in EntityKind)


def normalize_entity_kind(value: str | EntityKind | None) -> EntityKind:
    """Return the matching ``EntityKind``; unknown values raise ``ValueError``."""

    if isinstance(value, EntityKind):
        return value
    cleaned = (value or "").strip().lower()
    try:
        return EntityKind(cleaned)
    except ValueError as exc:
        raise ValueError(f"Unknown entity kind '{value}'") from exc


__all__ = ["ENTITY_KIND_CHOICES", "EntityKind", "normalize_entity_kind"]
