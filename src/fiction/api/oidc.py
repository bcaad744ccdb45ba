"""OpenID Connect bearer-token validation for identity-provider logins."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, cast

import httpx
import jwt
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey

from fiction.adapters.env import int_env, list_env, str_env


@dataclass(frozen=True)
class OidcClaims:
    """Verified identity claims for one contributor."""

    subject: str
    issuer: str
    email: str | None
    preferred_username: str | None
    name: str | None

    @property
    def display_name(self) -> str:
        return self.preferred_username or self.name or self.email or self.subject


@dataclass
class _TtlCache:
    value: dict[str, Any] | None = None
    expires_at: float = 0.0

    def get(self, now: float) -> dict[str, Any] | None:
        if self.value is not None and self.expires_at > now:
            return self.value
        return None

    def put(self, value: dict[str, Any], *, now: float, ttl_seconds: int) -> None:
        self.value = value
        self.expires_at = now + ttl_seconds


_JWKS_CACHE = _TtlCache()
_WELL_KNOWN_CACHE = _TtlCache()


def reset_caches() -> None:
    """Forget cached discovery documents and signing keys."""
    for cache in (_JWKS_CACHE, _WELL_KNOWN_CACHE):
        cache.value = None
        cache.expires_at = 0.0


def _get_json_object(url: str) -> dict[str, Any]:
    with httpx.Client(timeout=10.0, follow_redirects=True) as client:
        response = client.get(url)
        response.raise_for_status()
        payload = response.json()
    if not isinstance(payload, dict):
        raise RuntimeError(f"OIDC response from {url} was not an object.")
    return payload


def _fetch_well_known(issuer: str) -> dict[str, Any]:
    now = time.monotonic()
    cached = _WELL_KNOWN_CACHE.get(now)
    if cached is not None:
        return cached
    payload = _get_json_object(issuer.rstrip("/") + "/.well-known/openid-configuration")
    ttl = int_env("FICTION_OIDC_WELL_KNOWN_TTL_SECONDS", 300, minimum=30, maximum=3600)
    _WELL_KNOWN_CACHE.put(payload, now=now, ttl_seconds=ttl)
    return payload


def _resolve_jwks_url(issuer: str) -> str:
    explicit = str_env("FICTION_OIDC_JWKS_URL")
    if explicit:
        return explicit
    jwks_uri = _fetch_well_known(issuer).get("jwks_uri")
    if isinstance(jwks_uri, str) and jwks_uri:
        return jwks_uri
    raise RuntimeError("OIDC well-known config missing jwks_uri.")


def _fetch_jwks(issuer: str) -> dict[str, Any]:
    inline = str_env("FICTION_OIDC_JWKS_JSON")
    if inline:
        payload = json.loads(inline)
        if not isinstance(payload, dict):
            raise RuntimeError("OIDC JWKS JSON must be an object.")
        return payload
    now = time.monotonic()
    cached = _JWKS_CACHE.get(now)
    if cached is not None:
        return cached
    payload = _get_json_object(_resolve_jwks_url(issuer))
    ttl = int_env("FICTION_OIDC_JWKS_TTL_SECONDS", 300, minimum=30, maximum=3600)
    _JWKS_CACHE.put(payload, now=now, ttl_seconds=ttl)
    return payload


def _select_jwk(jwks: dict[str, Any], kid: str | None) -> dict[str, Any]:
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        raise RuntimeError("OIDC JWKS payload missing keys list.")
    if kid is None:
        if len(keys) == 1 and isinstance(keys[0], dict):
            return keys[0]
        raise RuntimeError("OIDC token header missing kid and JWKS has multiple keys.")
    for key in keys:
        if isinstance(key, dict) and key.get("kid") == kid:
            return key
    raise RuntimeError("OIDC JWKS did not contain signing key for token kid.")


def _optional_claim(payload: dict[str, Any], name: str) -> str | None:
    value = payload.get(name)
    return value if isinstance(value, str) and value.strip() else None


def validate_oidc_token(token: str) -> OidcClaims:
    """Validate a bearer token against FICTION_OIDC_* settings.

    Raises ``jwt.PyJWTError`` for bad signatures or claims and ``RuntimeError``
    for missing configuration or malformed key material.
    """
    issuer = str_env("FICTION_OIDC_ISSUER")
    if not issuer:
        raise RuntimeError("FICTION_OIDC_ISSUER is required for oidc auth.")
    audience = str_env("FICTION_OIDC_AUDIENCE")
    algorithms = list_env("FICTION_OIDC_ALGORITHMS") or ["RS256"]

    header = jwt.get_unverified_header(token)
    jwk = _select_jwk(_fetch_jwks(issuer), header.get("kid"))
    public_key = cast(RSAPublicKey, jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk)))
    payload = jwt.decode(
        token,
        key=public_key,
        algorithms=algorithms,
        audience=audience or None,
        issuer=issuer,
        options={"verify_aud": bool(audience)},
    )
    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise RuntimeError("OIDC token missing subject.")
    return OidcClaims(
        subject=subject,
        issuer=issuer,
        email=_optional_claim(payload, "email"),
        preferred_username=_optional_claim(payload, "preferred_username"),
        name=_optional_claim(payload, "name"),
    )
