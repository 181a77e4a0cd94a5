"""Display formatting for elapsed and remaining time."""

from __future__ import annotations

import math

PLACEHOLDER = "--:--:--"
ONGOING = "ongoing"


def format_seconds(seconds: object) -> str:
    """Format *seconds* as zero-padded ``HH:MM:SS``.

    Hours are unbounded (``100:00:00`` is valid).  Negative, non-finite or
    non-numeric input yields :data:`PLACEHOLDER` instead of raising.
    """
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return PLACEHOLDER
    if isinstance(seconds, float):
        if not math.isfinite(seconds):
            return PLACEHOLDER
        seconds = math.floor(seconds)
    if seconds < 0:
        return PLACEHOLDER
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_ended(seconds: object) -> str:
    """Format the final elapsed time of a session that reached its end."""
    return f"Ended ({format_seconds(seconds)})"


def format_remaining(remaining: object) -> str:
    """Format a remaining-time value, which may be the :data:`ONGOING` sentinel."""
    if remaining == ONGOING:
        return "Ongoing"
    return format_seconds(remaining)
