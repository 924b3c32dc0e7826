from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

ONE_MINUTE = timedelta(minutes=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso(ts: str | None, tz: str = "UTC") -> datetime | None:
    """Parse an ISO-8601 timestamp string.
    If naive, attach the provided tz. Returns None if ts is falsy.
    """
    if not ts:
        return None
    dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt


def to_iso(dt: datetime) -> str:
    """UTC, millisecond precision, ``Z`` suffix. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def working_minutes(start: datetime, end: datetime, paused_seconds: float = 0.0) -> int:
    """Whole minutes worked between start and end once pauses are removed.

    Truncates toward the earlier minute and never goes below zero, even when
    the clock moved backwards.
    """
    worked = (end - start) - timedelta(seconds=max(paused_seconds, 0.0))
    return max(worked // ONE_MINUTE, 0)


def elapsed_seconds(start: datetime, now: datetime, paused_seconds: float = 0.0) -> int:
    worked = (now - start).total_seconds() - paused_seconds
    return max(int(worked), 0)


def format_duration(minutes: int | None) -> str:
    """``95`` -> ``1h 35m``; under an hour only minutes are shown."""
    minutes = max(minutes or 0, 0)
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def format_clock(seconds: int) -> str:
    """``3725`` -> ``01:02:05``."""
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    mins, secs = divmod(rest, 60)
    return f"{hours:02d}:{mins:02d}:{secs:02d}"


def format_hours(hours: float) -> str:
    return "1 hour" if hours == 1 else f"{hours:g} hours"
