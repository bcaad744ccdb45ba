from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta

import pytest

from fiction.core.story_store import StoryStore
from fiction.domain.errors import AlreadyFinished, InvalidInput, NotFound
from fiction.domain.models import Placeholder, Story, StoryPhase, Written


class FakeClock:
    def __init__(self) -> None:
        self.current = datetime(2024, 5, 10, 17, 58, 28, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: int) -> None:
        self.current += timedelta(seconds=seconds)


class RecordingRepository:
    def __init__(self, stories: list[Story] | None = None) -> None:
        self.saved: list[Story] = []
        self._stories = stories or []
        self.fail_next = False

    def save_story(self, story: Story) -> None:
        if self.fail_next:
            self.fail_next = False
            raise OSError("disk full")
        self.saved.append(story)

    def load_stories(self) -> list[Story]:
        return list(self._stories)


def test_create_story_starts_empty() -> None:
    clock = FakeClock()
    store = StoryStore(clock=clock)
    story_id = store.create_story(owner="olivia", title="  The Ledger  ")
    story = store.get_story(story_id)
    assert story.snippets == ()
    assert story.started_at == clock.current
    assert story.finished_at is None
    assert story.owner == "olivia"
    assert story.title == "The Ledger"
    assert story.phase is StoryPhase.EMPTY


def test_append_returns_positions_in_narrative_order() -> None:
    store = StoryStore()
    story_id = store.create_story()
    assert store.append_snippet(story_id, "alice", "Once upon a time") == 0
    assert store.append_snippet(story_id, "bob", "a dragon appeared") == 1
    story = store.get_story(story_id)
    assert [snippet.author for snippet in story.snippets] == ["alice", "bob"]
    assert story.snippets[0].content == Written("Once upon a time")
    assert story.phase is StoryPhase.IN_PROGRESS


def test_placeholder_snippets_have_no_text() -> None:
    store = StoryStore()
    story_id = store.create_story()
    store.append_snippet(story_id, "alice", None)
    store.append_snippet(story_id, "bob", Placeholder())
    story = store.get_story(story_id)
    assert all(snippet.is_placeholder for snippet in story.snippets)
    assert story.snippets[0].text is None


def test_unknown_story_raises_not_found() -> None:
    store = StoryStore()
    with pytest.raises(NotFound):
        store.get_story("missing")
    with pytest.raises(NotFound):
        store.append_snippet("missing", "alice", "text")
    with pytest.raises(NotFound):
        store.finish_story("missing")


def test_finish_is_terminal_and_not_idempotent() -> None:
    clock = FakeClock()
    store = StoryStore(clock=clock)
    story_id = store.create_story()
    store.append_snippet(story_id, "alice", "Once upon a time")
    clock.advance(5)
    store.finish_story(story_id)
    finished = store.get_story(story_id)
    assert finished.finished_at == clock.current
    assert finished.phase is StoryPhase.FINISHED

    for _ in range(3):
        with pytest.raises(AlreadyFinished):
            store.finish_story(story_id)
        with pytest.raises(AlreadyFinished):
            store.append_snippet(story_id, "alice", "more")
    assert len(store.get_story(story_id).snippets) == 1


def test_finished_at_never_precedes_last_snippet() -> None:
    clock = FakeClock()
    store = StoryStore(clock=clock)
    story_id = store.create_story()
    store.append_snippet(story_id, "alice", "Once upon a time")
    last_created = store.get_story(story_id).snippets[-1].created_at
    clock.advance(-30)
    store.finish_story(story_id)
    finished_at = store.get_story(story_id).finished_at
    assert finished_at is not None
    assert finished_at >= last_created


def test_get_story_returns_snapshot() -> None:
    store = StoryStore()
    story_id = store.create_story()
    store.append_snippet(story_id, "alice", "first")
    before = store.get_story(story_id)
    store.append_snippet(story_id, "bob", "second")
    assert len(before.snippets) == 1
    assert len(store.get_story(story_id).snippets) == 2


@pytest.mark.parametrize(
    ("author", "content"),
    [
        ("", "text"),
        ("   ", "text"),
        ("alice", ""),
        ("alice", "   "),
        ("alice", "x" * 11),
    ],
)
def test_invalid_input_is_rejected_without_mutation(author: str, content: str) -> None:
    store = StoryStore(max_content_chars=10)
    story_id = store.create_story()
    with pytest.raises(InvalidInput):
        store.append_snippet(story_id, author, content)
    assert store.get_story(story_id).snippets == ()


def test_guard_can_veto_append() -> None:
    store = StoryStore()
    story_id = store.create_story()

    def guard(story: Story, lease: object) -> None:
        raise InvalidInput("vetoed")

    with pytest.raises(InvalidInput):
        store.append_snippet(story_id, "alice", "text", guard=guard)
    assert store.get_story(story_id).snippets == ()


def test_concurrent_appends_get_distinct_ordered_positions() -> None:
    store = StoryStore()
    story_id = store.create_story()
    positions: list[int] = []
    positions_lock = threading.Lock()
    barrier = threading.Barrier(8)

    def worker(index: int) -> None:
        barrier.wait()
        for round_index in range(25):
            position = store.append_snippet(story_id, f"author-{index}", f"{index}:{round_index}")
            with positions_lock:
                positions.append(position)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    story = store.get_story(story_id)
    assert sorted(positions) == list(range(200))
    assert len(story.snippets) == 200
    timestamps = [snippet.created_at for snippet in story.snippets]
    assert timestamps == sorted(timestamps)


def test_list_stories_filters_by_owner_newest_first() -> None:
    clock = FakeClock()
    store = StoryStore(clock=clock)
    first = store.create_story(owner="olivia")
    clock.advance(1)
    store.create_story(owner="omar")
    clock.advance(1)
    third = store.create_story(owner="olivia")
    owned = store.list_stories(owner="olivia")
    assert [story.id for story in owned] == [third, first]
    assert len(store.list_stories(limit=2)) == 2


def test_repository_receives_every_mutation_and_seeds_store() -> None:
    repository = RecordingRepository()
    store = StoryStore(repository=repository)
    story_id = store.create_story()
    store.append_snippet(story_id, "alice", "text")
    store.finish_story(story_id)
    assert len(repository.saved) == 3
    assert repository.saved[-1].is_finished

    reloaded = StoryStore(repository=RecordingRepository(stories=[repository.saved[-1]]))
    assert reloaded.get_story(story_id).is_finished


def test_repository_failure_leaves_state_untouched() -> None:
    repository = RecordingRepository()
    store = StoryStore(repository=repository)
    story_id = store.create_story()
    repository.fail_next = True
    with pytest.raises(OSError):
        store.append_snippet(story_id, "alice", "text")
    assert store.get_story(story_id).snippets == ()
    assert store.append_snippet(story_id, "alice", "text") == 0


def test_story_is_fully_readable_after_finish() -> None:
    store = StoryStore()
    story_id = store.create_story()
    store.append_snippet(story_id, "alice", "Once upon a time")
    store.append_snippet(story_id, "bob", "a dragon appeared")
    store.finish_story(story_id)
    story = store.get_story(story_id)
    assert [snippet.text for snippet in story.snippets] == [
        "Once upon a time",
        "a dragon appeared",
    ]
    assert story.finished_at is not None
