"""Schemas related to the Zoom OAuth flow. None of them carry token material."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload posted by the SPA when it receives the provider redirect itself."""

    code: Optional[str] = Field(None, description="Authorization code returned by Zoom.")
    state: Optional[str] = Field(None, description="Opaque state issued when starting OAuth.")
    error: Optional[str] = Field(None, description="Error code returned by Zoom, if any.")
    error_description: Optional[str] = None


class AuthorizationStart(BaseModel):
    authorization_url: str
    state: str
    expires_in: int


class ConnectionStatus(BaseModel):
    """Non-secret view of a user's Zoom connection."""

    connected: bool
    expired: bool = False
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    updated_at: Optional[datetime] = None


class TokenStats(BaseModel):
    total: int
    valid: int
    expired: int
    storage_type: str = "sqlite"


class RefreshResult(BaseModel):
    status: str = "refreshed"
    expires_at: datetime
    scope: Optional[str] = None


class ZoomProfile(BaseModel):
    """Subset of Zoom's ``users/me`` response; unknown fields are dropped."""

    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: Optional[str] = None
    account_id: Optional[str] = None
    type: Optional[int] = None
    timezone: Optional[str] = None


class DisconnectResult(BaseModel):
    status: str = "disconnected"
    removed: bool


__all__ = [
    "AuthorizationStart",
    "ConnectionStatus",
    "DisconnectResult",
    "OAuthCallbackPayload",
    "RefreshResult",
    "TokenStats",
    "ZoomProfile",
]
