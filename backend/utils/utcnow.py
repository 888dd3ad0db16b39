"""UTC time helpers.

All timestamps in API payloads are naive UTC rendered with a trailing
``Z``. ``datetime.utcnow()`` is deprecated since Python 3.12, so the
helpers build on ``datetime.now(timezone.utc)``.
"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Return the current UTC time as a naive (tzinfo=None) datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_iso(value: datetime | None = None) -> str:
    """ISO-8601 string with millisecond precision and a ``Z`` suffix."""
    moment = value if value is not None else utcnow()
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.isoformat(timespec="milliseconds") + "Z"


def gdelt_window(days: int, now: datetime | None = None) -> tuple[str, str]:
    """Start/end datetimes for a GDELT query covering the last ``days`` days."""
    end = now or utcnow()
    start = end - timedelta(days=max(0, int(days)))
    return start.strftime("%Y%m%d") + "000000", end.strftime("%Y%m%d") + "235959"
