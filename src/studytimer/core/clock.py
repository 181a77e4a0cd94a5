"""Clock and timestamp helpers.

The engine never reads the system time directly; it calls an injectable
``Clock`` so that tests can drive time by hand.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]

# Open-ended marker shared by session descriptors, state and persistence.
OPEN_END = "infinity"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Return *value* as an aware datetime, or ``None`` if it is not a timestamp.

    Accepts ``datetime`` objects and ISO-8601 strings.  Naive values are
    taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso(moment: datetime) -> str:
    """Render *moment* as UTC ISO-8601 with milliseconds and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def whole_seconds(later: datetime, earlier: datetime) -> int:
    """Whole seconds from *earlier* to *later*, floored and clamped at zero."""
    return max(0, int((later - earlier).total_seconds() // 1))
