"""Typed failures raised by the story core."""

from __future__ import annotations

from datetime import datetime


class FictionError(Exception):
    """Base class for recoverable story core failures."""


class NotFound(FictionError):
    """Story id does not match a known story."""

    def __init__(self, story_id: str) -> None:
        super().__init__(f"Story {story_id} not found.")
        self.story_id = story_id


class AlreadyFinished(FictionError):
    """Mutation attempted on a story that has been finished."""

    def __init__(self, story_id: str) -> None:
        super().__init__(f"Story {story_id} is already finished.")
        self.story_id = story_id


class TurnViolation(FictionError):
    """Contribution attempted out of turn.

    ``reason`` is one of ``repeat``, ``locked``, ``cooldown``, ``unlocked`` or
    ``out_of_turn``. ``holder`` and ``expires_at`` describe a conflicting lock.
    """

    def __init__(
        self,
        story_id: str,
        reason: str,
        *,
        holder: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        super().__init__(f"Turn violation on story {story_id}: {reason}.")
        self.story_id = story_id
        self.reason = reason
        self.holder = holder
        self.expires_at = expires_at


class InvalidInput(FictionError):
    """Caller supplied data the store refuses to accept."""
