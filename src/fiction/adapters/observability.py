"""Runtime logging configuration with bounded retention."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fiction.adapters.env import int_env

DEFAULT_LOG_PATH = "work/logs/fiction.log"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_CONFIGURED = False


@dataclass(frozen=True)
class LoggingSettings:
    """Logging knobs resolved from FICTION_* environment variables."""

    level: int
    log_path: Path
    max_bytes: int
    backup_count: int
    access_level: int

    @classmethod
    def from_env(cls) -> LoggingSettings:
        return cls(
            level=_level_env("FICTION_LOG_LEVEL", logging.INFO),
            log_path=Path(os.environ.get("FICTION_LOG_PATH", "").strip() or DEFAULT_LOG_PATH),
            max_bytes=int_env(
                "FICTION_LOG_MAX_BYTES",
                5 * 1024 * 1024,
                minimum=64 * 1024,
                maximum=100 * 1024 * 1024,
            ),
            backup_count=int_env("FICTION_LOG_BACKUP_COUNT", 10, minimum=1, maximum=120),
            access_level=_level_env("FICTION_ACCESS_LOG_LEVEL", logging.WARNING),
        )


def _level_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip().upper()
    if not raw:
        return default
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def configure_runtime_logging(settings: LoggingSettings | None = None) -> None:
    """Configure console + rotating file logs once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    resolved = settings or LoggingSettings.from_env()

    resolved.log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    file_handler = RotatingFileHandler(
        filename=resolved.log_path,
        maxBytes=resolved.max_bytes,
        backupCount=resolved.backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(resolved.level)
    root.handlers.clear()
    root.addHandler(stream_handler)
    root.addHandler(file_handler)
    logging.getLogger("uvicorn.access").setLevel(resolved.access_level)

    _CONFIGURED = True
