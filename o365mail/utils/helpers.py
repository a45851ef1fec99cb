"""Utility functions for o365mail."""

from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path

DATA_DIR_NAME = ".o365-mail-cli"

_DURATION_RE = re.compile(r"^(\d+)([mhdw])$")
_DURATION_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists (owner-only), return it."""
    path.mkdir(mode=0o700, parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Return the data directory (~/.o365-mail-cli) without creating it."""
    return Path.home() / DATA_DIR_NAME


def parse_duration(value: str) -> timedelta:
    """Parse durations like ``30m``, ``12h``, ``7d`` or ``2w``."""
    match = _DURATION_RE.match(value.strip().lower())
    if not match:
        raise ValueError(f"Invalid duration '{value}' (expected e.g. 30m, 12h, 7d, 2w)")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def truncate(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max(max_len - 3, 0)] + "..."


def parse_address(value: str) -> str:
    """Extract the bare address from ``Name <addr@example.com>``."""
    value = value.strip()
    start = value.rfind("<")
    end = value.rfind(">")
    if start != -1 and end > start:
        return value[start + 1 : end].strip()
    return value
