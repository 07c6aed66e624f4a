"""Timecode parsing and formatting."""

import re
import sys
from typing import Union

_PART_PATTERN = re.compile(r"^\d+$")


def time_to_seconds(value: Union[str, int, None]) -> int:
    """
    Convert ``HH:MM:SS``, ``MM:SS`` or ``SS`` into whole seconds.

    Malformed input never raises: it prints a warning and yields 0.
    """
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        print(f"[WARN] Invalid time format {value!r} provided, defaulting to 0s.", file=sys.stderr)
        return 0
    if isinstance(value, int):
        if value < 0:
            print(f"[WARN] Invalid time format {value!r} provided, defaulting to 0s.", file=sys.stderr)
            return 0
        return value

    parts = str(value).strip().split(":")
    if len(parts) > 3 or not all(_PART_PATTERN.match(part) for part in parts):
        print(f"[WARN] Invalid time format \"{value}\" provided, defaulting to 0s.", file=sys.stderr)
        return 0

    total = 0
    for part in parts:
        total = total * 60 + int(part)
    return total


def format_timecode(seconds: int) -> str:
    """Render whole seconds as ``HH:MM:SS``."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
