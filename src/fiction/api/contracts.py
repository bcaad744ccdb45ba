"""Typed contracts shared by API handlers and Python interfaces."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from fiction.domain.models import Snippet, Story, StoryPhase

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ContractModel(BaseModel):
    """Base model config used by all API contracts."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


def _normalize_email(value: str) -> str:
    normalized = value.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError("Email must be a valid address.")
    return normalized


class StoryCreateRequest(ContractModel):
    """Begin a new, empty story owned by the caller."""

    title: str | None = Field(default=None, max_length=300)


class SnippetCreateRequest(ContractModel):
    """Contribute the next snippet; ``content`` null records a placeholder.

    Prose keeps its surrounding whitespace; blank content is rejected by the store.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=False)

    content: str | None = Field(default=None, min_length=1)


class SnippetResponse(ContractModel):
    """One contributor's addition, as exposed over the API."""

    position: int = Field(ge=0)
    author: str
    created_at_utc: str
    content: str | None

    @classmethod
    def from_snippet(cls, snippet: Snippet, *, position: int) -> SnippetResponse:
        return cls(
            position=position,
            author=snippet.author,
            created_at_utc=snippet.created_at.isoformat(),
            content=snippet.text,
        )


class StorySummaryResponse(ContractModel):
    """Story metadata without any snippet text."""

    story_id: str
    owner_id: str | None
    title: str | None
    phase: StoryPhase
    snippet_count: int = Field(ge=0)
    started_at_utc: str
    finished_at_utc: str | None

    @classmethod
    def from_story(cls, story: Story) -> StorySummaryResponse:
        return cls(
            story_id=story.id,
            owner_id=story.owner,
            title=story.title,
            phase=story.phase,
            snippet_count=len(story.snippets),
            started_at_utc=story.started_at.isoformat(),
            finished_at_utc=story.finished_at.isoformat() if story.finished_at else None,
        )


class StoryResponse(StorySummaryResponse):
    """Full read of a story, including every snippet in narrative order."""

    snippets: list[SnippetResponse]

    @classmethod
    def from_story(cls, story: Story) -> StoryResponse:
        summary = StorySummaryResponse.from_story(story)
        return cls(
            **summary.model_dump(),
            snippets=[
                SnippetResponse.from_snippet(snippet, position=index)
                for index, snippet in enumerate(story.snippets)
            ],
        )


class PromptResponse(ContractModel):
    """What a contributor is allowed to see before writing."""

    story_id: str
    phase: StoryPhase
    can_submit: bool
    snippet: SnippetResponse | None


class SnippetCreatedResponse(ContractModel):
    """Position assigned to a freshly appended snippet."""

    story_id: str
    position: int = Field(ge=0)


class LockResponse(ContractModel):
    """Granted contribution lock plus the prompt it unlocks."""

    story_id: str
    state: Literal["granted"] = "granted"
    holder: str
    expires_at_utc: str
    snippet: SnippetResponse | None


class TurnDeniedResponse(ContractModel):
    """Why a contributor may not take the next turn."""

    state: Literal["denied"] = "denied"
    reason: str
    holder: str | None = None
    expires_at_utc: str | None = None


class AuthRegisterRequest(ContractModel):
    """Register a user account for local bearer-token auth."""

    email: str = Field(min_length=5, max_length=320)
    password: SecretStr = Field(min_length=8, max_length=200)
    display_name: str = Field(min_length=1, max_length=120)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: SecretStr) -> SecretStr:
        raw = value.get_secret_value()
        if raw.strip() != raw:
            raise ValueError("Password must not start or end with whitespace.")
        if not any(char.isalpha() for char in raw) or not any(char.isdigit() for char in raw):
            raise ValueError("Password must include at least one letter and one number.")
        return value


class AuthLoginRequest(ContractModel):
    """Authenticate and request an access token."""

    email: str = Field(min_length=5, max_length=320)
    password: SecretStr = Field(min_length=8, max_length=200)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _normalize_email(value)


class AuthTokenResponse(ContractModel):
    """Bearer token payload used by API clients."""

    access_token: str
    token_type: str = Field(default="bearer", pattern=r"^bearer$")
    expires_at_utc: str


class UserResponse(ContractModel):
    """Public user profile returned from authenticated endpoints."""

    user_id: str
    email: str
    display_name: str
    created_at_utc: str
