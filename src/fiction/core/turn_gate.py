"""Visibility and turn-order policy for collaborative stories."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta

from fiction.core.story_store import StoryStore, normalize_author
from fiction.domain.errors import AlreadyFinished, InvalidInput, TurnViolation
from fiction.domain.models import Snippet, SnippetContent, Story, TurnLease

DEFAULT_LOCK_DURATION = timedelta(seconds=21_600)

logger = logging.getLogger(__name__)


def _validate_roster(roster: Sequence[str] | None) -> tuple[str, ...]:
    if not roster:
        return ()
    members = tuple(normalize_author(member) for member in roster)
    if len(members) < 2:
        raise InvalidInput("A roster needs at least two contributors.")
    for index, member in enumerate(members):
        if member == members[(index + 1) % len(members)]:
            raise InvalidInput(f"Roster lists {member} twice in a row.")
    return members


class TurnGate:
    """Decide who may write next and what they are allowed to see.

    The minimum rule is that nobody writes two snippets in a row. On top of
    that a contributor may hold a time-limited lock on the next turn, and an
    optional roster enforces strict round-robin order. With ``require_lock``
    a snippet is only accepted from the holder of an active lock.
    """

    def __init__(
        self,
        store: StoryStore,
        *,
        lock_duration: timedelta = DEFAULT_LOCK_DURATION,
        roster: Sequence[str] | None = None,
        require_lock: bool = False,
    ) -> None:
        if lock_duration <= timedelta(0):
            raise InvalidInput("Lock duration must be positive.")
        self._store = store
        self._lock_duration = lock_duration
        self._roster = _validate_roster(roster)
        self._require_lock = require_lock

    @property
    def lock_duration(self) -> timedelta:
        return self._lock_duration

    @property
    def require_lock(self) -> bool:
        return self._require_lock

    def visible_prompt(self, story_id: str, requester: str) -> Snippet | None:
        """Return only the most recent snippet of an unfinished story.

        Finished stories are read in full through ``StoryStore.get_story``.
        """
        story, _ = self.prompt_state(story_id, requester)
        return story.last_snippet

    def prompt_state(self, story_id: str, requester: str) -> tuple[Story, bool]:
        """Return one unfinished snapshot and whether ``requester`` may take the turn."""
        requester = normalize_author(requester)
        story, lease = self._store.snapshot(story_id)
        if story.is_finished:
            raise AlreadyFinished(story_id)
        logger.debug("turn.prompt story_id=%s requester=%s", story_id, requester)
        return story, self._turn_open(story, lease, requester)

    def can_submit(self, story_id: str, requester: str) -> bool:
        """Report whether ``requester`` may take the next turn.

        Under ``require_lock`` the requester still has to acquire the lock
        before submitting.
        """
        requester = normalize_author(requester)
        story, lease = self._store.snapshot(story_id)
        if story.is_finished:
            return False
        return self._turn_open(story, lease, requester)

    def submit(self, story_id: str, author: str, content: SnippetContent | str | None) -> int:
        """Append a snippet only if ``author`` currently holds the turn."""
        author = normalize_author(author)

        def guard(story: Story, lease: TurnLease | None) -> None:
            now = self._store.now()
            self._check_turn(story, lease, author, now)
            if self._require_lock and (
                lease is None or lease.holder != author or not lease.is_active(now)
            ):
                raise TurnViolation(story_id, "unlocked")

        return self._store.append_snippet(story_id, author, content, guard=guard)

    def acquire_turn(self, story_id: str, requester: str) -> TurnLease:
        """Lock the next turn for ``requester`` and hand back the visible prompt."""
        requester = normalize_author(requester)
        now = self._store.now()

        def transition(story: Story, lease: TurnLease | None) -> TurnLease:
            if story.is_finished:
                raise AlreadyFinished(story_id)
            if lease is not None and lease.holder != requester and lease.is_active(now):
                raise TurnViolation(
                    story_id, "locked", holder=lease.holder, expires_at=lease.expires_at
                )
            last = story.last_snippet
            if last is not None and last.author == requester:
                raise TurnViolation(story_id, "cooldown")
            self._check_roster(story, requester)
            return TurnLease(
                story_id=story_id,
                holder=requester,
                expires_at=now + self._lock_duration,
                prompt=last,
                prompt_position=len(story.snippets) - 1 if last is not None else None,
            )

        granted = self._store.update_lease(story_id, transition)
        if granted is None:
            raise RuntimeError("Granted lease could not be loaded.")
        logger.info(
            "turn.lock story_id=%s holder=%s expires_at=%s",
            story_id,
            requester,
            granted.expires_at.isoformat(),
        )
        return granted

    def release_turn(self, story_id: str, requester: str) -> None:
        """Drop the lock ``requester`` currently holds on ``story_id``."""
        requester = normalize_author(requester)

        def transition(_: Story, lease: TurnLease | None) -> None:
            if lease is None or lease.holder != requester:
                raise TurnViolation(story_id, "unlocked")
            return None

        self._store.update_lease(story_id, transition)
        logger.info("turn.unlock story_id=%s holder=%s", story_id, requester)

    def _turn_open(self, story: Story, lease: TurnLease | None, requester: str) -> bool:
        try:
            self._check_turn(story, lease, requester, self._store.now())
        except TurnViolation:
            return False
        return True

    def _check_turn(
        self, story: Story, lease: TurnLease | None, requester: str, now: datetime
    ) -> None:
        last = story.last_snippet
        if last is not None and last.author == requester:
            raise TurnViolation(story.id, "repeat")
        if lease is not None and lease.holder != requester and lease.is_active(now):
            raise TurnViolation(story.id, "locked", holder=lease.holder, expires_at=lease.expires_at)
        self._check_roster(story, requester)

    def _check_roster(self, story: Story, requester: str) -> None:
        if not self._roster:
            return
        expected = self._roster[len(story.snippets) % len(self._roster)]
        if requester != expected:
            raise TurnViolation(story.id, "out_of_turn", holder=expected)
