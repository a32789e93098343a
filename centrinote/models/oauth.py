"""
Domain models for the OAuth handshake and token persistence.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OAuthHandshake(BaseModel):
    """A pending authorization attempt, stored server-side keyed by ``state``."""

    state: str
    code_verifier: Optional[str] = None
    code_challenge: Optional[str] = None
    user_id: Optional[str] = None
    redirect_path: str = "/dashboard"
    created_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
        current = now or utcnow()
        return current - self.created_at > timedelta(seconds=ttl_seconds)


class TokenGrant(BaseModel):
    """Token response returned by the provider or by the relay webhook."""

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: int = Field(..., gt=0)
    token_type: str = "bearer"
    scope: Optional[str] = None


class TokenRecord(BaseModel):
    """Decrypted view of a user's stored Zoom tokens."""

    user_id: str
    provider: str = "zoom"
    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, leeway_seconds: int = 0, now: Optional[datetime] = None) -> bool:
        current = now or utcnow()
        return self.expires_at <= current + timedelta(seconds=leeway_seconds)

    @classmethod
    def from_grant(
        cls,
        *,
        user_id: str,
        grant: TokenGrant,
        issued_at: datetime,
        previous: Optional["TokenRecord"] = None,
    ) -> "TokenRecord":
        """Build the record persisted after an exchange or a refresh."""
        refresh_token = grant.refresh_token or (previous.refresh_token if previous else None)
        if not refresh_token:
            raise ValueError("Token grant did not include a refresh token.")
        return cls(
            user_id=user_id,
            access_token=grant.access_token,
            refresh_token=refresh_token,
            expires_at=issued_at + timedelta(seconds=grant.expires_in),
            scope=grant.scope or (previous.scope if previous else None),
            created_at=previous.created_at if previous else issued_at,
            updated_at=issued_at,
        )


__all__ = ["OAuthHandshake", "TokenGrant", "TokenRecord", "utcnow"]
