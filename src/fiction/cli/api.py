"""CLI entrypoint for serving the fiction HTTP API."""

from __future__ import annotations

import argparse
import os

import uvicorn

from fiction.adapters.observability import configure_runtime_logging


def build_arg_parser() -> argparse.ArgumentParser:
    """Create CLI args for the API server process."""
    parser = argparse.ArgumentParser(description="Serve the collaborative fiction API.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    parser.add_argument(
        "--db-path",
        default="",
        help="SQLite path for story persistence (default: work/local/fiction.db).",
    )
    parser.add_argument(
        "--lock-duration-seconds",
        type=int,
        default=0,
        help="How long a contributor may hold the next turn (default: 21600).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI flags and start uvicorn with the app import path."""
    configure_runtime_logging()
    parsed = build_arg_parser().parse_args(argv)
    db_path = str(parsed.db_path).strip()
    if db_path:
        os.environ["FICTION_DB_PATH"] = db_path
    if parsed.lock_duration_seconds > 0:
        os.environ["FICTION_LOCK_DURATION_SECONDS"] = str(parsed.lock_duration_seconds)
    uvicorn.run(
        "fiction.api.app:app",
        host=str(parsed.host),
        port=int(parsed.port),
        reload=bool(parsed.reload),
    )


if __name__ == "__main__":
    main()
