from __future__ import annotations

import os

import pytest

from fiction.cli import api as api_cli


@pytest.fixture(autouse=True)
def _skip_logging_setup(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("fiction.cli.api.configure_runtime_logging", lambda: None)


def test_api_cli_calls_uvicorn(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, object]] = []

    def fake_run(app: str, host: str, port: int, reload: bool) -> None:
        calls.append({"app": app, "host": host, "port": port, "reload": reload})

    monkeypatch.setattr("fiction.cli.api.uvicorn.run", fake_run)
    api_cli.main(["--host", "0.0.0.0", "--port", "9000", "--reload"])

    assert calls == [
        {
            "app": "fiction.api.app:app",
            "host": "0.0.0.0",
            "port": 9000,
            "reload": True,
        }
    ]


def test_api_cli_sets_db_path_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FICTION_DB_PATH", raising=False)
    monkeypatch.setattr("fiction.cli.api.uvicorn.run", lambda *args, **kwargs: None)
    api_cli.main(["--db-path", "work/local/custom.db"])
    assert os.environ["FICTION_DB_PATH"] == "work/local/custom.db"


def test_api_cli_sets_lock_duration_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FICTION_LOCK_DURATION_SECONDS", raising=False)
    monkeypatch.setattr("fiction.cli.api.uvicorn.run", lambda *args, **kwargs: None)
    api_cli.main(["--lock-duration-seconds", "900"])
    assert os.environ["FICTION_LOCK_DURATION_SECONDS"] == "900"


def test_api_cli_leaves_env_alone_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FICTION_DB_PATH", raising=False)
    monkeypatch.delenv("FICTION_LOCK_DURATION_SECONDS", raising=False)
    monkeypatch.setattr("fiction.cli.api.uvicorn.run", lambda *args, **kwargs: None)
    api_cli.main([])
    assert "FICTION_DB_PATH" not in os.environ
    assert "FICTION_LOCK_DURATION_SECONDS" not in os.environ
