"""Authoritative in-memory story state with per-story serialized mutation."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from fiction.domain.errors import AlreadyFinished, InvalidInput, NotFound
from fiction.domain.models import (
    Placeholder,
    Snippet,
    SnippetContent,
    Story,
    TurnLease,
    Written,
    content_from_text,
)
from fiction.domain.ports import StoryRepository

DEFAULT_MAX_CONTENT_CHARS = 10_000
MAX_AUTHOR_CHARS = 320
MAX_TITLE_CHARS = 300

Clock = Callable[[], datetime]
AppendGuard = Callable[[Story, "TurnLease | None"], None]
LeaseTransition = Callable[[Story, "TurnLease | None"], "TurnLease | None"]

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_author(author: str) -> str:
    """Trim a contributor id; blank or over-long ids are InvalidInput."""
    normalized = author.strip() if isinstance(author, str) else ""
    if not normalized:
        raise InvalidInput("Snippet author must be a non-empty string.")
    if len(normalized) > MAX_AUTHOR_CHARS:
        raise InvalidInput(f"Snippet author must be at most {MAX_AUTHOR_CHARS} characters.")
    return normalized


@dataclass
class _StoryEntry:
    story: Story
    lease: TurnLease | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


class StoryStore:
    """Own every story and serialize mutation per story.

    Stories are kept as immutable snapshots; a mutation builds the next
    snapshot, persists it through the optional repository and only then swaps
    it in, all while holding that story's lock. Independent stories never
    contend with each other.
    """

    def __init__(
        self,
        *,
        repository: StoryRepository | None = None,
        clock: Clock = utc_now,
        max_content_chars: int = DEFAULT_MAX_CONTENT_CHARS,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._max_content_chars = max_content_chars
        self._entries: dict[str, _StoryEntry] = {}
        self._registry_lock = threading.Lock()
        if repository is not None:
            for story in repository.load_stories():
                self._entries[story.id] = _StoryEntry(story=story)
            logger.info("story_store.load stories=%s", len(self._entries))

    @property
    def max_content_chars(self) -> int:
        return self._max_content_chars

    def now(self) -> datetime:
        return self._clock()

    def create_story(self, *, owner: str | None = None, title: str | None = None) -> str:
        """Allocate an empty story and return its id."""
        if title is not None:
            title = title.strip() or None
        if title is not None and len(title) > MAX_TITLE_CHARS:
            raise InvalidInput(f"Story title must be at most {MAX_TITLE_CHARS} characters.")
        story = Story(id=uuid4().hex, started_at=self._clock(), owner=owner, title=title)
        self._persist(story)
        with self._registry_lock:
            self._entries[story.id] = _StoryEntry(story=story)
        logger.info("story.create story_id=%s owner=%s", story.id, owner)
        return story.id

    def append_snippet(
        self,
        story_id: str,
        author: str,
        content: SnippetContent | str | None,
        *,
        guard: AppendGuard | None = None,
    ) -> int:
        """Append one snippet and return its zero-based position.

        ``guard`` runs against the current snapshot and lease while the story
        lock is held; raising from it vetoes the append.
        """
        author = normalize_author(author)
        snippet_content = self._validate_content(content)
        with self._locked(story_id) as entry:
            if entry.story.is_finished:
                raise AlreadyFinished(story_id)
            if guard is not None:
                guard(entry.story, entry.lease)
            snippet = Snippet(author=author, created_at=self._clock(), content=snippet_content)
            updated = entry.story.with_snippet(snippet)
            self._persist(updated)
            entry.story = updated
            if entry.lease is not None and entry.lease.holder == author:
                entry.lease = None
            position = len(updated.snippets) - 1
        logger.info("story.append story_id=%s author=%s position=%s", story_id, author, position)
        return position

    def finish_story(self, story_id: str) -> None:
        """Mark a story as completed; a second call fails with AlreadyFinished."""
        with self._locked(story_id) as entry:
            if entry.story.is_finished:
                raise AlreadyFinished(story_id)
            updated = entry.story.finished(self._clock())
            self._persist(updated)
            entry.story = updated
            entry.lease = None
        logger.info("story.finish story_id=%s snippets=%s", story_id, len(updated.snippets))

    def get_story(self, story_id: str) -> Story:
        """Return a snapshot of one story."""
        with self._locked(story_id) as entry:
            return entry.story

    def snapshot(self, story_id: str) -> tuple[Story, TurnLease | None]:
        """Return a consistent story snapshot together with its current lease."""
        with self._locked(story_id) as entry:
            return entry.story, entry.lease

    def list_stories(self, *, owner: str | None = None, limit: int = 100) -> list[Story]:
        """Return story snapshots, most recently started first."""
        with self._registry_lock:
            entries = list(self._entries.values())
        stories: list[Story] = []
        for entry in entries:
            with entry.lock:
                stories.append(entry.story)
        if owner is not None:
            stories = [story for story in stories if story.owner == owner]
        stories.sort(key=lambda story: story.started_at, reverse=True)
        return stories[:limit]

    def update_lease(self, story_id: str, transition: LeaseTransition) -> TurnLease | None:
        """Replace the story's lease with ``transition(story, lease)`` atomically."""
        with self._locked(story_id) as entry:
            entry.lease = transition(entry.story, entry.lease)
            return entry.lease

    @contextmanager
    def _locked(self, story_id: str) -> Iterator[_StoryEntry]:
        with self._registry_lock:
            entry = self._entries.get(story_id)
        if entry is None:
            raise NotFound(story_id)
        with entry.lock:
            yield entry

    def _persist(self, story: Story) -> None:
        if self._repository is not None:
            self._repository.save_story(story)

    def _validate_content(self, content: SnippetContent | str | None) -> SnippetContent:
        if isinstance(content, Placeholder):
            return content
        if isinstance(content, Written):
            text = content.text
        elif content is None:
            return content_from_text(None)
        else:
            text = content
        if not text.strip():
            raise InvalidInput("Snippet content must not be blank.")
        if len(text) > self._max_content_chars:
            raise InvalidInput(
                f"Snippet content must be at most {self._max_content_chars} characters."
            )
        return content_from_text(text)
