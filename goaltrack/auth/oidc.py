"""Bearer token verification.

Two modes, picked from settings.environment:

- dev/test: HS256 tokens signed with DEV_JWT_SECRET (see create_dev_token)
- prod: RS256/ES256 tokens from the configured OIDC issuer, verified against
  the issuer's published key set, which is held for five minutes

Every accepted token must carry ``sub`` (mapped to users.external_id), a
valid ``exp`` and an ``aud`` containing OIDC_AUDIENCE.  ``email`` and
``name`` are used for JIT provisioning when present.
"""

from __future__ import annotations

import time
import uuid
from datetime import UTC, datetime
from typing import Any

import httpx
import jwt
import structlog
from jwt.exceptions import DecodeError, InvalidTokenError

from goaltrack.config import Settings

log = structlog.get_logger(__name__)

_ASYMMETRIC_ALGORITHMS = ["RS256", "ES256"]
_DEV_ALGORITHM = "HS256"


class TokenValidationError(Exception):
    """The bearer token was malformed, expired, or not issued for us."""


class _IssuerKeys:
    """Signing keys of the OIDC issuer, keyed by ``kid``."""

    ttl_seconds = 300

    def __init__(self) -> None:
        self._keys: dict[str, Any] = {}
        self._loaded_at = 0.0

    def _stale(self) -> bool:
        return not self._keys or time.monotonic() - self._loaded_at > self.ttl_seconds

    async def _download(self, issuer_url: str) -> list[dict[str, Any]]:
        config_url = issuer_url.rstrip("/") + "/.well-known/openid-configuration"
        async with httpx.AsyncClient(timeout=10.0) as client:
            config = await client.get(config_url)
            config.raise_for_status()
            key_set = await client.get(config.json()["jwks_uri"])
            key_set.raise_for_status()
        return key_set.json().get("keys", [])

    async def key_for(self, kid: str | None, issuer_url: str) -> dict[str, Any]:
        if self._stale():
            self._keys = {key["kid"]: key for key in await self._download(issuer_url)}
            self._loaded_at = time.monotonic()
            log.info("oidc.keys_loaded", issuer=issuer_url, count=len(self._keys))

        if kid is not None and kid in self._keys:
            return self._keys[kid]
        if len(self._keys) == 1:
            # Issuers with a single key frequently leave kid out of the header
            return next(iter(self._keys.values()))
        raise TokenValidationError(f"No signing key matches kid={kid!r}")


_issuer_keys = _IssuerKeys()
_dev_warning_logged = False


async def validate_token(token: str, settings: Settings) -> dict[str, Any]:
    """Verify ``token`` and return its claims.

    Raises:
        TokenValidationError: On any signature, expiry, audience, issuer or
            claim problem, or when the issuer's keys cannot be fetched
    """
    if settings.is_dev:
        claims = _decode_dev(token, settings)
    else:
        claims = await _decode_oidc(token, settings)

    if not claims.get("sub"):
        raise TokenValidationError("Token has no 'sub' claim")
    return claims


async def _decode_oidc(token: str, settings: Settings) -> dict[str, Any]:
    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except (DecodeError, InvalidTokenError) as exc:
        raise TokenValidationError(f"Malformed token header: {exc}") from exc

    try:
        key_data = await _issuer_keys.key_for(kid, settings.oidc_issuer_url)
    except httpx.HTTPError as exc:
        raise TokenValidationError(f"Issuer keys unavailable: {exc}") from exc

    try:
        return jwt.decode(
            token,
            jwt.PyJWK(key_data).key,
            algorithms=_ASYMMETRIC_ALGORITHMS,
            audience=settings.oidc_audience,
            issuer=settings.oidc_issuer_url,
            options={"require": ["exp", "sub"]},
        )
    except (DecodeError, InvalidTokenError) as exc:
        raise TokenValidationError(f"Token rejected: {exc}") from exc


def _decode_dev(token: str, settings: Settings) -> dict[str, Any]:
    global _dev_warning_logged
    if not _dev_warning_logged:
        log.warning("oidc.symmetric_dev_tokens", environment=settings.environment)
        _dev_warning_logged = True

    try:
        return jwt.decode(
            token,
            settings.dev_jwt_secret.get_secret_value(),
            algorithms=[_DEV_ALGORITHM],
            audience=settings.oidc_audience,
            options={"require": ["exp"]},
        )
    except (DecodeError, InvalidTokenError) as exc:
        raise TokenValidationError(f"Dev token rejected: {exc}") from exc


def create_dev_token(
    *,
    sub: str,
    secret: str,
    audience: str,
    email: str = "",
    expires_in: int = 3600,
) -> str:
    """Mint an HS256 token accepted in dev/test mode.

    A negative ``expires_in`` yields an already expired token.
    """
    issued = int(datetime.now(UTC).timestamp())
    claims = {
        "sub": sub,
        "aud": audience,
        "iat": issued,
        "exp": issued + expires_in,
        "jti": uuid.uuid4().hex,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm=_DEV_ALGORITHM)
