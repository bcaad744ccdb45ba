"""Python-first client for the fiction HTTP API."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from fiction.api.contracts import (
    LockResponse,
    PromptResponse,
    SnippetCreatedResponse,
    SnippetCreateRequest,
    StoryCreateRequest,
    StoryResponse,
    StorySummaryResponse,
)


@dataclass(frozen=True)
class AuthSession:
    """Authenticated client session."""

    access_token: str
    api_base_url: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


class StoryApiClient:
    """Tiny typed API client for contributors and story owners."""

    def __init__(self, api_base_url: str = "http://127.0.0.1:8000") -> None:
        """Initialize client with an API base URL."""
        self._api_base_url = api_base_url.rstrip("/")

    @property
    def api_base_url(self) -> str:
        """Return normalized API base URL."""
        return self._api_base_url

    def register(self, *, email: str, password: str, display_name: str) -> None:
        """Create an account for local bearer-token authentication."""
        response = httpx.post(
            f"{self._api_base_url}/api/v1/auth/register",
            json={
                "email": email,
                "password": password,
                "display_name": display_name,
            },
            timeout=30.0,
        )
        response.raise_for_status()

    def login(self, *, email: str, password: str) -> AuthSession:
        """Authenticate and return a reusable auth session."""
        response = httpx.post(
            f"{self._api_base_url}/api/v1/auth/login",
            json={"email": email, "password": password},
            timeout=30.0,
        )
        response.raise_for_status()
        payload = response.json()
        return AuthSession(access_token=str(payload["access_token"]), api_base_url=self._api_base_url)

    def create_story(self, *, session: AuthSession, title: str | None = None) -> StorySummaryResponse:
        """Begin a story owned by the session user."""
        request = StoryCreateRequest(title=title)
        response = httpx.post(
            f"{session.api_base_url}/api/v1/stories",
            json=request.model_dump(mode="json"),
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return StorySummaryResponse.model_validate(response.json())

    def prompt(self, *, session: AuthSession, story_id: str) -> PromptResponse:
        """Fetch the single snippet the session user may see."""
        response = httpx.get(
            f"{session.api_base_url}/api/v1/stories/{story_id}/prompt",
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return PromptResponse.model_validate(response.json())

    def acquire_lock(self, *, session: AuthSession, story_id: str) -> LockResponse:
        """Claim the next turn on a story."""
        response = httpx.post(
            f"{session.api_base_url}/api/v1/stories/{story_id}/lock",
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return LockResponse.model_validate(response.json())

    def release_lock(self, *, session: AuthSession, story_id: str) -> None:
        """Give up a previously claimed turn."""
        response = httpx.delete(
            f"{session.api_base_url}/api/v1/stories/{story_id}/lock",
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()

    def submit_snippet(
        self, *, session: AuthSession, story_id: str, content: str | None
    ) -> SnippetCreatedResponse:
        """Contribute the next snippet under a held lock; None records a placeholder."""
        request = SnippetCreateRequest(content=content)
        response = httpx.post(
            f"{session.api_base_url}/api/v1/stories/{story_id}/snippets",
            json=request.model_dump(mode="json"),
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return SnippetCreatedResponse.model_validate(response.json())

    def finish_story(self, *, session: AuthSession, story_id: str) -> StoryResponse:
        """Finish an owned story and return its full text."""
        response = httpx.post(
            f"{session.api_base_url}/api/v1/stories/{story_id}/finish",
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return StoryResponse.model_validate(response.json())

    def read_story(self, *, session: AuthSession, story_id: str) -> StoryResponse:
        """Read a finished story in full."""
        response = httpx.get(
            f"{session.api_base_url}/api/v1/stories/{story_id}",
            headers=session.headers,
            timeout=30.0,
        )
        response.raise_for_status()
        return StoryResponse.model_validate(response.json())


__all__ = ["AuthSession", "StoryApiClient"]
