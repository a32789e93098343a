"""Resolve the signed-in Centrinote user from a Supabase access token."""

from __future__ import annotations

import logging
from typing import Optional

import jwt

from centrinote.core.config import SecuritySettings

logger = logging.getLogger(__name__)


class InvalidSessionError(Exception):
    """The bearer token was present but could not be verified."""


class SessionAuthenticator:
    """Verify HS256 Supabase JWTs and return their ``sub`` claim."""

    def __init__(self, security_settings: SecuritySettings) -> None:
        self._secret = security_settings.supabase_jwt_secret
        self._audience = security_settings.supabase_jwt_audience

    @property
    def enabled(self) -> bool:
        return bool(self._secret)

    def resolve_user_id(self, authorization: Optional[str]) -> Optional[str]:
        """Return the session user id, ``None`` without a session."""
        if not authorization or not self.enabled:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise InvalidSessionError("Authorization header must be a bearer token.")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                audience=self._audience,
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidSessionError("Session token has expired.") from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("Rejected session token: %s", exc.__class__.__name__)
            raise InvalidSessionError("Session token is invalid.") from exc

        user_id = claims.get("sub")
        if not user_id:
            raise InvalidSessionError("Session token has no subject.")
        return str(user_id)


__all__ = ["InvalidSessionError", "SessionAuthenticator"]
