"""SQLite-backed persistence for users, tokens, stories and snippets."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from fiction.domain.models import Snippet, Story, content_from_text


@dataclass(frozen=True)
class StoredUser:
    """Stored user account data."""

    user_id: str
    email: str
    display_name: str
    password_hash: str
    created_at_utc: str


@dataclass(frozen=True)
class StoredToken:
    """Stored bearer-token session."""

    token_id: str
    user_id: str
    token_value: str
    expires_at_utc: str
    created_at_utc: str


class SQLiteStoryStore:
    """Persist story platform records in one SQLite database.

    Implements the ``StoryRepository`` port for the in-memory story store and
    keeps the account tables used by the HTTP layer.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self._db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _initialize_schema(self) -> None:
        with self._connect() as connection:
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    created_at_utc TEXT NOT NULL
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS access_tokens (
                    token_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    token_value TEXT NOT NULL UNIQUE,
                    expires_at_utc TEXT NOT NULL,
                    created_at_utc TEXT NOT NULL,
                    FOREIGN KEY (user_id) REFERENCES users(user_id)
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS stories (
                    story_id TEXT PRIMARY KEY,
                    owner_id TEXT,
                    title TEXT,
                    started_at_utc TEXT NOT NULL,
                    finished_at_utc TEXT
                )
                """
            )
            connection.execute(
                """
                CREATE TABLE IF NOT EXISTS snippets (
                    story_id TEXT NOT NULL,
                    ordinal INTEGER NOT NULL,
                    author TEXT NOT NULL,
                    created_at_utc TEXT NOT NULL,
                    content TEXT,
                    PRIMARY KEY (story_id, ordinal),
                    FOREIGN KEY (story_id) REFERENCES stories(story_id)
                )
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_stories_owner_started
                ON stories(owner_id, started_at_utc DESC)
                """
            )
            connection.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_tokens_user
                ON access_tokens(user_id, expires_at_utc DESC)
                """
            )

    def create_user(
        self, *, email: str, display_name: str, password_hash: str
    ) -> StoredUser | None:
        """Create a user record; return None when email is already taken."""
        now = datetime.now(UTC).isoformat()
        user_id = uuid4().hex
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO users (user_id, email, display_name, password_hash, created_at_utc)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (user_id, email.lower(), display_name, password_hash, now),
                )
        except sqlite3.IntegrityError:
            return None
        return self.get_user_by_id(user_id=user_id)

    def upsert_external_user(
        self, *, user_id: str, email: str, display_name: str
    ) -> StoredUser | None:
        """Create or refresh a user vouched for by an identity provider.

        External users carry no password hash, so local login never matches
        them. Returns None when the email belongs to a different account.
        """
        now = datetime.now(UTC).isoformat()
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO users (user_id, email, display_name, password_hash, created_at_utc)
                    VALUES (?, ?, ?, '', ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        email = excluded.email,
                        display_name = excluded.display_name
                    """,
                    (user_id, email.lower(), display_name, now),
                )
        except sqlite3.IntegrityError:
            return None
        return self.get_user_by_id(user_id=user_id)

    def get_user_by_email(self, *, email: str) -> StoredUser | None:
        """Load one user by normalized email."""
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT user_id, email, display_name, password_hash, created_at_utc
                FROM users
                WHERE email = ?
                """,
                (email.lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._user_from_row(row)

    def get_user_by_id(self, *, user_id: str) -> StoredUser | None:
        """Load one user by id."""
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT user_id, email, display_name, password_hash, created_at_utc
                FROM users
                WHERE user_id = ?
                """,
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._user_from_row(row)

    def create_token(self, *, user_id: str, token_value: str, expires_at_utc: str) -> StoredToken:
        """Create and store a bearer token."""
        token_id = uuid4().hex
        now = datetime.now(UTC).isoformat()
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO access_tokens (token_id, user_id, token_value, expires_at_utc, created_at_utc)
                VALUES (?, ?, ?, ?, ?)
                """,
                (token_id, user_id, token_value, expires_at_utc, now),
            )
        return StoredToken(
            token_id=token_id,
            user_id=user_id,
            token_value=token_value,
            expires_at_utc=expires_at_utc,
            created_at_utc=now,
        )

    def get_user_by_token(self, *, token_value: str, now_utc: str) -> StoredUser | None:
        """Resolve a bearer token into a user if it is still valid."""
        with self._connect() as connection:
            row = connection.execute(
                """
                SELECT u.user_id, u.email, u.display_name, u.password_hash, u.created_at_utc
                FROM access_tokens t
                JOIN users u ON u.user_id = t.user_id
                WHERE t.token_value = ? AND t.expires_at_utc > ?
                """,
                (token_value, now_utc),
            ).fetchone()
        if row is None:
            return None
        return self._user_from_row(row)

    def save_story(self, story: Story) -> None:
        """Upsert the story row and append any snippets not yet stored.

        Snippets are append-only, so rows already present for an ordinal are
        never rewritten.
        """
        with self._connect() as connection:
            connection.execute(
                """
                INSERT INTO stories (story_id, owner_id, title, started_at_utc, finished_at_utc)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(story_id) DO UPDATE SET
                    title = excluded.title,
                    finished_at_utc = excluded.finished_at_utc
                """,
                (
                    story.id,
                    story.owner,
                    story.title,
                    story.started_at.isoformat(),
                    story.finished_at.isoformat() if story.finished_at else None,
                ),
            )
            stored_count = int(
                connection.execute(
                    "SELECT COUNT(*) FROM snippets WHERE story_id = ?",
                    (story.id,),
                ).fetchone()[0]
            )
            connection.executemany(
                """
                INSERT INTO snippets (story_id, ordinal, author, created_at_utc, content)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (story.id, ordinal, snippet.author, snippet.created_at.isoformat(), snippet.text)
                    for ordinal, snippet in enumerate(story.snippets)
                    if ordinal >= stored_count
                ],
            )

    def load_stories(self) -> list[Story]:
        """Load every story with its snippets in narrative order."""
        with self._connect() as connection:
            story_rows = connection.execute(
                """
                SELECT story_id, owner_id, title, started_at_utc, finished_at_utc
                FROM stories
                ORDER BY started_at_utc
                """
            ).fetchall()
            snippet_rows = connection.execute(
                """
                SELECT story_id, ordinal, author, created_at_utc, content
                FROM snippets
                ORDER BY story_id, ordinal
                """
            ).fetchall()
        snippets_by_story: dict[str, list[Snippet]] = {}
        for row in snippet_rows:
            snippets_by_story.setdefault(str(row["story_id"]), []).append(
                self._snippet_from_row(row)
            )
        return [
            self._story_from_row(row, tuple(snippets_by_story.get(str(row["story_id"]), [])))
            for row in story_rows
        ]

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> StoredUser:
        return StoredUser(
            user_id=str(row["user_id"]),
            email=str(row["email"]),
            display_name=str(row["display_name"]),
            password_hash=str(row["password_hash"]),
            created_at_utc=str(row["created_at_utc"]),
        )

    @staticmethod
    def _snippet_from_row(row: sqlite3.Row) -> Snippet:
        content = row["content"]
        return Snippet(
            author=str(row["author"]),
            created_at=datetime.fromisoformat(str(row["created_at_utc"])),
            content=content_from_text(None if content is None else str(content)),
        )

    @staticmethod
    def _story_from_row(row: sqlite3.Row, snippets: tuple[Snippet, ...]) -> Story:
        finished = row["finished_at_utc"]
        return Story(
            id=str(row["story_id"]),
            started_at=datetime.fromisoformat(str(row["started_at_utc"])),
            snippets=snippets,
            finished_at=datetime.fromisoformat(str(finished)) if finished else None,
            owner=None if row["owner_id"] is None else str(row["owner_id"]),
            title=None if row["title"] is None else str(row["title"]),
        )
