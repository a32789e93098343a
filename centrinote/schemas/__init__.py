"""Public schema exports."""

from .auth import (
    AuthorizationStart,
    ConnectionStatus,
    DisconnectResult,
    OAuthCallbackPayload,
    RefreshResult,
    TokenStats,
    ZoomProfile,
)

__all__ = [
    "AuthorizationStart",
    "ConnectionStatus",
    "DisconnectResult",
    "OAuthCallbackPayload",
    "RefreshResult",
    "TokenStats",
    "ZoomProfile",
]
