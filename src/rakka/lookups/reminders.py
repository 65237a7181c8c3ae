"""Reminder duration parsing and formatting."""

from __future__ import annotations

import re
from datetime import timedelta

MAX_REMINDER = timedelta(hours=24)
REMINDER_USAGE = "Usage: `remind <duration> <message>` (e.g., `remind 10m Pizza is ready`)"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(text: str) -> timedelta:
    """Parse durations such as ``45s``, ``10m`` or ``1h30m``."""
    text = text.strip().lower()
    pos = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        seconds += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if not text or pos != len(text):
        raise ValueError("invalid time format. Use 10m, 1h, 30s, etc.")
    if seconds <= 0:
        raise ValueError("reminder duration must be positive.")
    delay = timedelta(seconds=seconds)
    if delay > MAX_REMINDER:
        raise ValueError("max reminder time is 24 hours.")
    return delay


def format_duration(delay: timedelta) -> str:
    total = int(delay.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    parts = [f"{hours}h" if hours else "", f"{minutes}m" if minutes else "", f"{seconds}s" if seconds else ""]
    return "".join(parts) or "0s"


def reminder_text(user: str, message: str) -> str:
    return f"🔔 **REMINDER** for {user}: {message}"
