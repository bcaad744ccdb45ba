"""Core story domain models."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum


@dataclass(frozen=True)
class Placeholder:
    """Snippet slot that has been claimed but not yet written."""

    @property
    def text(self) -> None:
        return None


@dataclass(frozen=True)
class Written:
    """Snippet body with actual prose."""

    text: str

    def __post_init__(self) -> None:
        if not self.text:
            raise ValueError("Written snippet text must be non-empty; use Placeholder instead.")


SnippetContent = Placeholder | Written


def content_from_text(text: str | None) -> SnippetContent:
    """Map optional text onto the snippet content sum type."""
    if text is None:
        return Placeholder()
    return Written(text=text)


class StoryPhase(str, Enum):
    """Lifecycle position of one story."""

    EMPTY = "empty"
    IN_PROGRESS = "in_progress"
    FINISHED = "finished"


@dataclass(frozen=True)
class Snippet:
    """A part of a story told by a single author."""

    author: str
    created_at: datetime
    content: SnippetContent

    @property
    def text(self) -> str | None:
        return self.content.text

    @property
    def is_placeholder(self) -> bool:
        return isinstance(self.content, Placeholder)


@dataclass(frozen=True)
class Story:
    """A complete story, told by many people."""

    id: str
    started_at: datetime
    snippets: tuple[Snippet, ...] = ()
    finished_at: datetime | None = None
    owner: str | None = None
    title: str | None = None

    @property
    def phase(self) -> StoryPhase:
        if self.finished_at is not None:
            return StoryPhase.FINISHED
        if not self.snippets:
            return StoryPhase.EMPTY
        return StoryPhase.IN_PROGRESS

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    @property
    def last_snippet(self) -> Snippet | None:
        return self.snippets[-1] if self.snippets else None

    def with_snippet(self, snippet: Snippet) -> Story:
        return replace(self, snippets=(*self.snippets, snippet))

    def finished(self, at: datetime) -> Story:
        last = self.last_snippet
        if last is not None and at < last.created_at:
            at = last.created_at
        return replace(self, finished_at=at)


@dataclass(frozen=True)
class TurnLease:
    """Exclusive, time-limited right to contribute the next snippet.

    ``prompt`` is the snippet the holder was shown at ``prompt_position``.
    """

    story_id: str
    holder: str
    expires_at: datetime
    prompt: Snippet | None = None
    prompt_position: int | None = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at >= now
