from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """Mongo hands back naive datetimes unless the client is tz-aware."""
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts
