from datetime import UTC, datetime, timedelta

import pytest

from fiction.domain.models import (
    Placeholder,
    Snippet,
    Story,
    StoryPhase,
    TurnLease,
    Written,
    content_from_text,
)

STARTED = datetime(2024, 1, 1, tzinfo=UTC)


def test_content_from_text_maps_none_to_placeholder() -> None:
    assert content_from_text(None) == Placeholder()
    assert content_from_text("dragons") == Written("dragons")


def test_written_rejects_empty_text() -> None:
    with pytest.raises(ValueError):
        Written("")


def test_story_phase_follows_lifecycle() -> None:
    story = Story(id="s1", started_at=STARTED)
    assert story.phase is StoryPhase.EMPTY
    assert story.last_snippet is None

    snippet = Snippet(author="alice", created_at=STARTED, content=Written("Once"))
    in_progress = story.with_snippet(snippet)
    assert in_progress.phase is StoryPhase.IN_PROGRESS
    assert in_progress.last_snippet == snippet
    assert story.snippets == ()

    finished = in_progress.finished(STARTED + timedelta(minutes=1))
    assert finished.phase is StoryPhase.FINISHED
    assert finished.is_finished


def test_lease_activity_is_inclusive_of_expiry() -> None:
    lease = TurnLease(story_id="s1", holder="bob", expires_at=STARTED)
    assert lease.is_active(STARTED)
    assert not lease.is_active(STARTED + timedelta(seconds=1))
