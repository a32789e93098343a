"""
Secure random ``state`` values and PKCE (RFC 7636) S256 helpers.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

from centrinote.core.errors import SecureRandomUnavailableError

STATE_BYTES = 32
VERIFIER_BYTES = 64
CHALLENGE_METHOD = "S256"


def _token_urlsafe(nbytes: int) -> str:
    try:
        return secrets.token_urlsafe(nbytes)
    except NotImplementedError as exc:
        raise SecureRandomUnavailableError(
            "No cryptographically secure random source is available."
        ) from exc


def generate_state() -> str:
    """Return an unguessable anti-CSRF nonce (256 bits, URL-safe)."""
    return _token_urlsafe(STATE_BYTES)


def generate_code_verifier() -> str:
    """Return an 86 character verifier drawn from the RFC 7636 unreserved set."""
    return _token_urlsafe(VERIFIER_BYTES)


def derive_code_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(ASCII(code_verifier))) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def verify_code_challenge(code_verifier: str, code_challenge: str) -> bool:
    """Check that ``code_challenge`` was derived from ``code_verifier`` with S256."""
    expected = derive_code_challenge(code_verifier)
    return hmac.compare_digest(expected.encode("utf-8"), code_challenge.encode("utf-8"))


__all__ = [
    "CHALLENGE_METHOD",
    "derive_code_challenge",
    "generate_code_verifier",
    "generate_state",
    "verify_code_challenge",
]
