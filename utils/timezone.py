"""Clock helpers. Everything stored or signed is in UTC."""

from datetime import datetime, timezone


def now_utc() -> datetime:
    """
    Current aware UTC time.

    Modules import this name directly, so tests patch it per module
    (e.g. auth.registration.now_utc) to move the clock.
    """
    return datetime.now(timezone.utc)


def seconds_since(moment: datetime, now: datetime | None = None) -> float:
    """
    Seconds elapsed from moment until now (defaults to the current time).

    Raises ValueError for a naive moment; comparing it against an aware
    clock would silently assume a timezone.
    """
    if moment.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware.")
    return ((now or now_utc()) - moment).total_seconds()
