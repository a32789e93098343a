"""
FastAPI dependency utilities for injecting configuration and the session user.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from centrinote.core.config import AppSettings, get_settings
from centrinote.dependencies.clients import get_session_authenticator
from centrinote.services import InvalidSessionError, SessionAuthenticator


@lru_cache()
def _settings_singleton() -> AppSettings:
    """Ensure configuration is created once per process."""
    return get_settings()


def get_app_settings() -> AppSettings:
    """FastAPI dependency returning application settings."""
    return _settings_singleton()


def get_session_user_id(
    authorization: Optional[str] = Header(default=None),
    authenticator: SessionAuthenticator = Depends(get_session_authenticator),
) -> Optional[str]:
    """Return the signed-in user id, ``None`` when the request has no session."""
    try:
        return authenticator.resolve_user_id(authorization)
    except InvalidSessionError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


SettingsDependency = Depends(get_app_settings)

__all__ = ["SettingsDependency", "get_app_settings", "get_session_user_id"]
