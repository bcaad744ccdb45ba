"""Public API surface for HTTP serving and Python-first interfaces."""

from fiction.api.app import create_app
from fiction.api.python_interface import AuthSession, StoryApiClient

__all__ = [
    "AuthSession",
    "StoryApiClient",
    "create_app",
]
