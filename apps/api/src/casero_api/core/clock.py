from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware 'now' in UTC."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read back from the store to aware UTC.

    SQLite drops tzinfo on the way out, so naive values are interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def latest(*values: Optional[datetime]) -> datetime:
    """Return the most recent of the given datetimes, ignoring missing ones."""
    present = [ensure_utc(value) for value in values if value is not None]
    if not present:
        raise ValueError("latest() requires at least one datetime")
    return max(present)  # type: ignore[type-var]
