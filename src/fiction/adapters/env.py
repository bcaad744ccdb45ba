"""Environment variable readers shared by runtime configuration."""

from __future__ import annotations

import os


def str_env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    """Read an integer env var, clamped to bounds; invalid values use the default."""
    raw = str_env(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def list_env(name: str) -> list[str]:
    """Read a comma-separated env var into trimmed, non-empty items."""
    return [item.strip() for item in str_env(name).split(",") if item.strip()]
