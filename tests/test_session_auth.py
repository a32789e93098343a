try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import time

import jwt
import pytest

from centrinote.core.config import SecuritySettings
from centrinote.services.session_auth import InvalidSessionError, SessionAuthenticator

SECRET = "supabase-test-secret-that-is-long-enough"


def _authenticator(secret: str | None = SECRET) -> SessionAuthenticator:
    return SessionAuthenticator(SecuritySettings(supabase_jwt_secret=secret))


def _token(**claims) -> str:
    payload = {"sub": "user-1", "aud": "authenticated", "exp": int(time.time()) + 60}
    payload.update(claims)
    return jwt.encode(payload, SECRET, algorithm="HS256")


def test_valid_bearer_token_resolves_subject() -> None:
    assert _authenticator().resolve_user_id(f"Bearer {_token()}") == "user-1"


def test_missing_header_or_disabled_verification_means_no_session() -> None:
    assert _authenticator().resolve_user_id(None) is None
    assert _authenticator(secret=None).resolve_user_id(f"Bearer {_token()}") is None


@pytest.mark.parametrize(
    "header",
    [
        "Basic dXNlcjpwYXNz",
        "Bearer ",
        "Bearer not-a-jwt",
    ],
)
def test_malformed_headers_are_rejected(header: str) -> None:
    with pytest.raises(InvalidSessionError):
        _authenticator().resolve_user_id(header)


def test_expired_wrong_audience_and_missing_subject_are_rejected() -> None:
    authenticator = _authenticator()

    with pytest.raises(InvalidSessionError, match="expired"):
        authenticator.resolve_user_id(f"Bearer {_token(exp=int(time.time()) - 60)}")
    with pytest.raises(InvalidSessionError):
        authenticator.resolve_user_id(f"Bearer {_token(aud='anon')}")
    with pytest.raises(InvalidSessionError):
        authenticator.resolve_user_id(f"Bearer {_token(sub='')}")
