"""Ports for story persistence."""

from __future__ import annotations

from typing import Protocol

from fiction.domain.models import Story


class StoryRepository(Protocol):
    """Persists and loads story aggregates."""

    def save_story(self, story: Story) -> None:
        ...

    def load_stories(self) -> list[Story]:
        ...
