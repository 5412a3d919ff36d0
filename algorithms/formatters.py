import datetime
import re

_REPS_PATTERN = re.compile(r"^\d+(\s*-\s*\d+)*$")


def format_duration(seconds: float) -> str:
    """Return a short duration such as ``1h 23m``, ``45m`` or ``30s``."""
    if seconds < 0:
        raise ValueError("seconds must be non-negative")
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    parts: list[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs and not hours:
        parts.append(f"{secs}s")
    return " ".join(parts) or "0s"


def format_elapsed(seconds: float) -> str:
    """Return a stopwatch reading, ``MM:SS`` or ``H:MM:SS`` past an hour."""
    if seconds < 0:
        raise ValueError("seconds must be non-negative")
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_clock(value: datetime.datetime | str, time_format: str = "24h") -> str:
    """Return the time of day as ``14:05`` or ``2:05 PM``."""
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value)
    if time_format == "24h":
        return f"{value.hour:02d}:{value.minute:02d}"
    if time_format == "12h":
        hour = value.hour % 12 or 12
        suffix = "AM" if value.hour < 12 else "PM"
        return f"{hour}:{value.minute:02d} {suffix}"
    raise ValueError(f"unknown time format: {time_format}")


def parse_target_reps(text: str) -> list[int]:
    """Split rep notation like ``12-10-8`` into per-set targets."""
    value = str(text).strip()
    if not _REPS_PATTERN.match(value):
        raise ValueError(f"invalid target reps: {text!r}")
    reps = [int(part) for part in value.split("-")]
    if any(r <= 0 for r in reps):
        raise ValueError(f"invalid target reps: {text!r}")
    return reps
