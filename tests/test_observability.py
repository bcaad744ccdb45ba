from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fiction.adapters import observability
from fiction.adapters.observability import LoggingSettings, configure_runtime_logging


def test_logging_settings_read_env_with_bounds(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.setenv("FICTION_LOG_LEVEL", "debug")
    monkeypatch.setenv("FICTION_LOG_PATH", str(tmp_path / "app.log"))
    monkeypatch.setenv("FICTION_LOG_MAX_BYTES", "1")
    monkeypatch.setenv("FICTION_LOG_BACKUP_COUNT", "not-a-number")
    monkeypatch.setenv("FICTION_ACCESS_LOG_LEVEL", "nonsense")

    settings = LoggingSettings.from_env()

    assert settings.level == logging.DEBUG
    assert settings.log_path == tmp_path / "app.log"
    assert settings.max_bytes == 64 * 1024
    assert settings.backup_count == 10
    assert settings.access_level == logging.WARNING


def test_configure_runtime_logging_runs_once(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    monkeypatch.setattr(observability, "_CONFIGURED", False)
    settings = LoggingSettings(
        level=logging.INFO,
        log_path=tmp_path / "logs" / "fiction.log",
        max_bytes=64 * 1024,
        backup_count=1,
        access_level=logging.WARNING,
    )
    try:
        configure_runtime_logging(settings)
        configured = list(root.handlers)
        configure_runtime_logging(settings)
        assert root.handlers == configured
        assert len(configured) == 2
        assert (tmp_path / "logs").is_dir()
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
