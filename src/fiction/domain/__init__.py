"""Domain models, errors and ports for collaborative stories."""

from fiction.domain.errors import AlreadyFinished, FictionError, InvalidInput, NotFound, TurnViolation
from fiction.domain.models import (
    Placeholder,
    Snippet,
    SnippetContent,
    Story,
    StoryPhase,
    TurnLease,
    Written,
    content_from_text,
)
from fiction.domain.ports import StoryRepository

__all__ = [
    "AlreadyFinished",
    "FictionError",
    "InvalidInput",
    "NotFound",
    "Placeholder",
    "Snippet",
    "SnippetContent",
    "Story",
    "StoryPhase",
    "StoryRepository",
    "TurnLease",
    "TurnViolation",
    "Written",
    "content_from_text",
]
