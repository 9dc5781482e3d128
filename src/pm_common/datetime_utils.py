"""UTC datetime utilities.

The engine works in integer unix seconds (deadlines, interest accrual,
resolution timestamps); the API and event store use aware datetimes.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def unix_now() -> int:
    """Current UTC time in whole seconds — the engine's default clock."""
    return int(utc_now().timestamp())


def from_unix(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
