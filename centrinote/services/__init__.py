"""Service layer exports."""

from .handshakes import HandshakeService
from .oauth_callback import CallbackOutcome, CallbackStatus, OAuthCallbackHandler
from .session_auth import InvalidSessionError, SessionAuthenticator
from .token_cipher import TokenCipherService
from .zoom_tokens import ZoomTokenService

__all__ = [
    "CallbackOutcome",
    "CallbackStatus",
    "HandshakeService",
    "InvalidSessionError",
    "OAuthCallbackHandler",
    "SessionAuthenticator",
    "TokenCipherService",
    "ZoomTokenService",
]
