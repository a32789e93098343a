"""
Error taxonomy for the Zoom OAuth flow.

Every error carries a machine readable ``kind`` and a message that is safe to
show to the user. Messages never include codes, tokens or client secrets.
"""

from __future__ import annotations

from typing import Optional


class OAuthFlowError(Exception):
    """Base class for terminal OAuth flow failures."""

    kind = "oauth_error"
    default_message = "The Zoom connection could not be completed."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ProviderDeniedError(OAuthFlowError):
    """The provider redirected back with an ``error`` parameter."""

    kind = "provider_denied"
    default_message = "Zoom did not grant access."

    def __init__(self, error: str, description: Optional[str] = None) -> None:
        self.error = error
        super().__init__(description or error)


class MalformedCallbackError(OAuthFlowError):
    kind = "malformed_callback"
    default_message = "Malformed callback: code and state are required."


class HandshakeExpiredOrMissingError(OAuthFlowError):
    """No pending handshake: TTL passed, cookies blocked or already consumed."""

    kind = "handshake_expired_or_missing"
    default_message = "The authorization request expired or was already used. Please start again."


class CsrfValidationFailedError(OAuthFlowError):
    kind = "csrf_validation_failed"
    default_message = "CSRF validation failed: the state parameter does not match."


class IdentityResolutionError(OAuthFlowError):
    kind = "identity_unresolved"
    default_message = "Sign in to Centrinote before connecting Zoom."


class UpstreamExchangeError(OAuthFlowError):
    """The token endpoint or relay failed to produce tokens."""

    kind = "upstream_exchange_failure"
    default_message = "The token exchange with Zoom failed."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UpstreamHTTPError(UpstreamExchangeError):
    kind = "upstream_http_error"

    def __init__(self, status_code: int, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Token exchange rejected with HTTP {status_code}.",
            status_code=status_code,
        )


class UpstreamUnreachableError(UpstreamExchangeError):
    kind = "upstream_unreachable"
    default_message = "Upstream unreachable: could not contact the token service."


class UpstreamParseError(UpstreamExchangeError):
    kind = "upstream_parse_failure"
    default_message = "Parse failure: the token service returned an unexpected response."


class ReauthorizationRequiredError(OAuthFlowError):
    """The refresh token was rejected; the user must run the full flow again."""

    kind = "reauthorization_required"
    default_message = "Reauthorization required: reconnect your Zoom account."


class TokenRecordNotFoundError(OAuthFlowError):
    kind = "not_connected"
    default_message = "No Zoom connection is stored for this user."


class SecureRandomUnavailableError(RuntimeError):
    """Raised when the OS cannot supply cryptographically secure randomness."""


__all__ = [
    "CsrfValidationFailedError",
    "HandshakeExpiredOrMissingError",
    "IdentityResolutionError",
    "MalformedCallbackError",
    "OAuthFlowError",
    "ProviderDeniedError",
    "ReauthorizationRequiredError",
    "SecureRandomUnavailableError",
    "TokenRecordNotFoundError",
    "UpstreamExchangeError",
    "UpstreamHTTPError",
    "UpstreamParseError",
    "UpstreamUnreachableError",
]
