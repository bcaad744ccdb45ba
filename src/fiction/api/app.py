"""FastAPI application exposing collaborative story turns."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Literal

import jwt
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from fiction.adapters.env import int_env, list_env, str_env
from fiction.adapters.sqlite_story_store import SQLiteStoryStore, StoredUser
from fiction.api.contracts import (
    AuthLoginRequest,
    AuthRegisterRequest,
    AuthTokenResponse,
    LockResponse,
    PromptResponse,
    SnippetCreatedResponse,
    SnippetCreateRequest,
    SnippetResponse,
    StoryCreateRequest,
    StoryResponse,
    StorySummaryResponse,
    TurnDeniedResponse,
    UserResponse,
)
from fiction.api.oidc import validate_oidc_token
from fiction.core.story_store import DEFAULT_MAX_CONTENT_CHARS, StoryStore
from fiction.core.turn_gate import DEFAULT_LOCK_DURATION, TurnGate
from fiction.domain.errors import AlreadyFinished, InvalidInput, NotFound, TurnViolation
from fiction.domain.models import Snippet, Story

DEFAULT_DB_PATH = Path("work/local/fiction.db")
TOKEN_TTL_HOURS = 24
PBKDF2_ITERATIONS = 310_000
AuthMode = Literal["local", "oidc"]

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Simple health payload used by probes."""

    status: Literal["ok"] = "ok"
    service: str = "fiction"


class ApiRootResponse(BaseModel):
    """Describes currently available API capabilities and runtime mode."""

    name: str = "fiction"
    persistence: Literal["sqlite"] = "sqlite"
    auth: AuthMode = "local"
    endpoints: list[str] = Field(
        default_factory=lambda: [
            "/healthz",
            "/api/v1",
            "/api/v1/auth/register",
            "/api/v1/auth/login",
            "/api/v1/me",
            "/api/v1/stories",
            "/api/v1/stories/{story_id}",
            "/api/v1/stories/{story_id}/prompt",
            "/api/v1/stories/{story_id}/lock",
            "/api/v1/stories/{story_id}/snippets",
            "/api/v1/stories/{story_id}/finish",
        ]
    )


def _resolve_db_path(db_path: Path | None) -> Path:
    """Resolve DB path from explicit arg, env var, then default path."""
    if db_path is not None:
        return db_path
    env_value = str_env("FICTION_DB_PATH")
    if env_value:
        return Path(env_value)
    return DEFAULT_DB_PATH


def _cors_origins() -> list[str]:
    return list_env("FICTION_CORS_ORIGINS") or [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ]


def _auth_mode() -> AuthMode:
    return "oidc" if str_env("FICTION_AUTH_MODE", "local").lower() == "oidc" else "local"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _hash_password(password: str) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def _verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = password_hash.split("$", maxsplit=3)
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    recomputed = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        bytes.fromhex(salt_hex),
        int(iterations),
    )
    return hmac.compare_digest(recomputed.hex(), digest_hex)


def _user_response(user: StoredUser) -> UserResponse:
    return UserResponse(
        user_id=user.user_id,
        email=user.email,
        display_name=user.display_name,
        created_at_utc=user.created_at_utc,
    )


def _positioned(snippet: Snippet | None, position: int | None) -> SnippetResponse | None:
    if snippet is None or position is None:
        return None
    return SnippetResponse.from_snippet(snippet, position=position)


def create_app(
    db_path: Path | None = None,
    *,
    lock_duration_seconds: int | None = None,
    max_snippet_chars: int | None = None,
) -> FastAPI:
    """Create the API application around one explicitly owned story store."""
    effective_db_path = _resolve_db_path(db_path)
    auth_mode = _auth_mode()
    if lock_duration_seconds is None:
        lock_duration_seconds = int_env(
            "FICTION_LOCK_DURATION_SECONDS",
            int(DEFAULT_LOCK_DURATION.total_seconds()),
            minimum=60,
            maximum=7 * 24 * 3600,
        )
    if max_snippet_chars is None:
        max_snippet_chars = int_env(
            "FICTION_MAX_SNIPPET_CHARS",
            DEFAULT_MAX_CONTENT_CHARS,
            minimum=1,
            maximum=10 * 1024 * 1024,
        )
    sqlite_store = SQLiteStoryStore(db_path=effective_db_path)
    story_store = StoryStore(repository=sqlite_store, max_content_chars=max_snippet_chars)
    turn_gate = TurnGate(
        story_store,
        lock_duration=timedelta(seconds=lock_duration_seconds),
        require_lock=True,
    )
    bearer = HTTPBearer(auto_error=False)

    app = FastAPI(
        title="fiction API",
        version="0.1.0",
        description=(
            "Collaborative fiction: each contributor sees only the previous snippet, "
            "adds their own, and the owner finishes the story for everyone to read."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {"name": "system", "description": "Service health and runtime metadata."},
            {"name": "api", "description": "API discovery and root-level capability listing."},
            {"name": "auth", "description": "Registration, login, and profile lookups."},
            {"name": "stories", "description": "Story creation, full reads and finishing."},
            {"name": "turns", "description": "Prompts, contribution locks and snippet submission."},
        ],
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.story_store = story_store
    app.state.turn_gate = turn_gate

    logger.info(
        "api.start db_path=%s auth_mode=%s lock_duration_seconds=%s max_snippet_chars=%s",
        effective_db_path,
        auth_mode,
        lock_duration_seconds,
        max_snippet_chars,
    )

    @app.exception_handler(NotFound)
    async def not_found_handler(_: Request, error: NotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": "Story not found"})

    @app.exception_handler(AlreadyFinished)
    async def already_finished_handler(_: Request, error: AlreadyFinished) -> JSONResponse:
        logger.info("api.already_finished story_id=%s", error.story_id)
        return JSONResponse(status_code=409, content={"detail": "Story is already finished"})

    @app.exception_handler(TurnViolation)
    async def turn_violation_handler(_: Request, error: TurnViolation) -> JSONResponse:
        logger.info(
            "api.turn_denied story_id=%s reason=%s holder=%s",
            error.story_id,
            error.reason,
            error.holder,
        )
        denied = TurnDeniedResponse(
            reason=error.reason,
            holder=error.holder,
            expires_at_utc=error.expires_at.isoformat() if error.expires_at else None,
        )
        return JSONResponse(status_code=409, content={"detail": denied.model_dump(mode="json")})

    @app.exception_handler(InvalidInput)
    async def invalid_input_handler(_: Request, error: InvalidInput) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(error)})

    def current_user(
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    ) -> StoredUser:
        if credentials is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing bearer token",
            )
        if auth_mode == "oidc":
            return oidc_user(credentials.credentials)
        user = sqlite_store.get_user_by_token(
            token_value=credentials.credentials, now_utc=_utc_now().isoformat()
        )
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
            )
        return user

    def oidc_user(token: str) -> StoredUser:
        try:
            claims = validate_oidc_token(token)
        except (jwt.PyJWTError, RuntimeError, ValueError) as exc:
            logger.warning("auth.oidc_rejected error=%s", exc)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
            ) from exc
        user = sqlite_store.upsert_external_user(
            user_id=f"oidc:{claims.subject}",
            email=claims.email or f"{claims.subject}@oidc.invalid",
            display_name=claims.display_name,
        )
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Identity conflicts with an existing account",
            )
        return user

    def require_local_auth() -> None:
        if auth_mode != "local":
            raise HTTPException(
                status_code=status.HTTP_501_NOT_IMPLEMENTED,
                detail="Local accounts are disabled; sign in through the identity provider.",
            )

    def readable_story_or_403(*, story_id: str, user: StoredUser) -> Story:
        story = story_store.get_story(story_id)
        if not story.is_finished and story.owner != user.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Story is still being written",
            )
        return story

    @app.get("/healthz", response_model=HealthResponse, tags=["system"])
    def healthz() -> HealthResponse:
        return HealthResponse()

    @app.get("/api/v1", response_model=ApiRootResponse, tags=["api"])
    def api_v1_root() -> ApiRootResponse:
        return ApiRootResponse(auth=auth_mode)

    @app.post("/api/v1/auth/register", response_model=UserResponse, tags=["auth"], status_code=201)
    def register(payload: AuthRegisterRequest) -> UserResponse:
        require_local_auth()
        created = sqlite_store.create_user(
            email=payload.email,
            display_name=payload.display_name.strip(),
            password_hash=_hash_password(payload.password.get_secret_value()),
        )
        if created is None:
            raise HTTPException(status_code=409, detail="Email already registered")
        return _user_response(created)

    @app.post("/api/v1/auth/login", response_model=AuthTokenResponse, tags=["auth"])
    def login(payload: AuthLoginRequest) -> AuthTokenResponse:
        require_local_auth()
        user = sqlite_store.get_user_by_email(email=payload.email)
        if user is None or not _verify_password(
            payload.password.get_secret_value(), user.password_hash
        ):
            raise HTTPException(status_code=401, detail="Invalid credentials")
        expires_at = _utc_now() + timedelta(hours=TOKEN_TTL_HOURS)
        token = sqlite_store.create_token(
            user_id=user.user_id,
            token_value=secrets.token_urlsafe(32),
            expires_at_utc=expires_at.isoformat(),
        )
        return AuthTokenResponse(
            access_token=token.token_value, expires_at_utc=token.expires_at_utc
        )

    @app.get("/api/v1/me", response_model=UserResponse, tags=["auth"])
    def me(user: StoredUser = Depends(current_user)) -> UserResponse:
        return _user_response(user)

    @app.get("/api/v1/stories", response_model=list[StorySummaryResponse], tags=["stories"])
    def list_stories(
        limit: int = Query(default=100, ge=1, le=500),
        mine: bool = Query(default=False),
        user: StoredUser = Depends(current_user),
    ) -> list[StorySummaryResponse]:
        owner = user.user_id if mine else None
        return [
            StorySummaryResponse.from_story(story)
            for story in story_store.list_stories(owner=owner, limit=limit)
        ]

    @app.post(
        "/api/v1/stories", response_model=StorySummaryResponse, tags=["stories"], status_code=201
    )
    def create_story(
        payload: StoryCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> StorySummaryResponse:
        story_id = story_store.create_story(owner=user.user_id, title=payload.title)
        return StorySummaryResponse.from_story(story_store.get_story(story_id))

    @app.get("/api/v1/stories/{story_id}", response_model=StoryResponse, tags=["stories"])
    def get_story(story_id: str, user: StoredUser = Depends(current_user)) -> StoryResponse:
        return StoryResponse.from_story(readable_story_or_403(story_id=story_id, user=user))

    @app.post(
        "/api/v1/stories/{story_id}/finish", response_model=StoryResponse, tags=["stories"]
    )
    def finish_story(story_id: str, user: StoredUser = Depends(current_user)) -> StoryResponse:
        story = story_store.get_story(story_id)
        if story.owner != user.user_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the story owner may finish it",
            )
        story_store.finish_story(story_id)
        return StoryResponse.from_story(story_store.get_story(story_id))

    @app.get(
        "/api/v1/stories/{story_id}/prompt", response_model=PromptResponse, tags=["turns"]
    )
    def get_prompt(story_id: str, user: StoredUser = Depends(current_user)) -> PromptResponse:
        story, can_submit = turn_gate.prompt_state(story_id, user.user_id)
        return PromptResponse(
            story_id=story_id,
            phase=story.phase,
            can_submit=can_submit,
            snippet=_positioned(story.last_snippet, len(story.snippets) - 1),
        )

    @app.post("/api/v1/stories/{story_id}/lock", response_model=LockResponse, tags=["turns"])
    def acquire_lock(story_id: str, user: StoredUser = Depends(current_user)) -> LockResponse:
        lease = turn_gate.acquire_turn(story_id, user.user_id)
        return LockResponse(
            story_id=lease.story_id,
            holder=lease.holder,
            expires_at_utc=lease.expires_at.isoformat(),
            snippet=_positioned(lease.prompt, lease.prompt_position),
        )

    @app.delete("/api/v1/stories/{story_id}/lock", status_code=204, tags=["turns"])
    def release_lock(story_id: str, user: StoredUser = Depends(current_user)) -> Response:
        turn_gate.release_turn(story_id, user.user_id)
        return Response(status_code=204)

    @app.post(
        "/api/v1/stories/{story_id}/snippets",
        response_model=SnippetCreatedResponse,
        tags=["turns"],
        status_code=201,
    )
    def submit_snippet(
        story_id: str,
        payload: SnippetCreateRequest,
        user: StoredUser = Depends(current_user),
    ) -> SnippetCreatedResponse:
        position = turn_gate.submit(story_id, user.user_id, payload.content)
        return SnippetCreatedResponse(story_id=story_id, position=position)

    return app


app = create_app()
