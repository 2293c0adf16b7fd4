"""Display helpers for durations and history entries."""
from typing import Dict, NamedTuple

SECONDS_PER_MINUTE = 60
SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 86400

ACTION_LABELS: Dict[str, str] = {
    "created": "Created",
    "time_added": "Time added",
    "time_removed": "Time removed",
    "paused": "Paused",
    "resumed": "Resumed",
    "completed": "Completed",
    "cancelled": "Cancelled",
}


class DurationParts(NamedTuple):
    """A duration broken into countdown display units."""
    days: int
    hours: int
    minutes: int
    seconds: int


def split_duration(total_seconds: int) -> DurationParts:
    """Split seconds into days/hours/minutes/seconds (negatives count as 0)."""
    total = max(0, int(total_seconds))
    return DurationParts(
        days=total // SECONDS_PER_DAY,
        hours=(total % SECONDS_PER_DAY) // SECONDS_PER_HOUR,
        minutes=(total % SECONDS_PER_HOUR) // SECONDS_PER_MINUTE,
        seconds=total % SECONDS_PER_MINUTE,
    )


def duration_from_parts(days: int = 0, hours: int = 0, minutes: int = 0) -> int:
    """Convert a days/hours/minutes form entry to seconds."""
    if days < 0 or hours < 0 or minutes < 0:
        raise ValueError("duration parts cannot be negative")
    return days * SECONDS_PER_DAY + hours * SECONDS_PER_HOUR + minutes * SECONDS_PER_MINUTE


def format_days_hours(total_seconds: int) -> str:
    """Format a total as '3 d 4 h' (dashboard statistic cards)."""
    parts = split_duration(total_seconds)
    return f"{parts.days} d {parts.hours} h"


def format_countdown(total_seconds: int) -> str:
    """Format as 'DD:HH:MM:SS' with zero padding."""
    parts = split_duration(total_seconds)
    return f"{parts.days:02d}:{parts.hours:02d}:{parts.minutes:02d}:{parts.seconds:02d}"


def describe_duration(total_seconds: int) -> str:
    """
    Short human description such as '1d 2h 30m'.

    Zero-valued units are omitted; a duration under one minute reads '0m'.
    """
    parts = split_duration(total_seconds)
    pieces = []
    if parts.days:
        pieces.append(f"{parts.days}d")
    if parts.hours:
        pieces.append(f"{parts.hours}h")
    if parts.minutes:
        pieces.append(f"{parts.minutes}m")
    return " ".join(pieces) if pieces else "0m"


def format_time_change(time_change_seconds: int) -> str:
    """Signed whole hours, e.g. '+1h' or '-2h', as shown in lock history."""
    hours = abs(int(time_change_seconds)) // SECONDS_PER_HOUR
    sign = "+" if time_change_seconds >= 0 else "-"
    return f"{sign}{hours}h"


def action_label(action: str) -> str:
    """Display label for a history action; unknown actions pass through."""
    key = getattr(action, "value", action)
    return ACTION_LABELS.get(key, str(key))
