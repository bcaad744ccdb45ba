"""Story store and turn policy."""

from fiction.core.story_store import StoryStore
from fiction.core.turn_gate import TurnGate

__all__ = ["StoryStore", "TurnGate"]
