try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from centrinote.clients import SQLiteStore
from centrinote.core.config import IdentityPolicy, OAuthSettings
from centrinote.core.errors import UpstreamHTTPError, UpstreamUnreachableError
from centrinote.models.oauth import OAuthHandshake, TokenGrant, utcnow
from centrinote.schemas.auth import OAuthCallbackPayload
from centrinote.services.handshakes import HandshakeService
from centrinote.services.oauth_callback import CallbackStatus, OAuthCallbackHandler
from centrinote.services.token_cipher import TokenCipherService
from centrinote.services.zoom_tokens import ZoomTokenService

REDIRECT_URI = "https://app.example.com/api/auth/zoom/callback"


class FakeExchanger:
    def __init__(self, grant: TokenGrant | None = None, error: Exception | None = None) -> None:
        self.grant = grant or TokenGrant(
            access_token="AT1", refresh_token="RT1", expires_in=3600, scope="meeting:read"
        )
        self.error = error
        self.calls: list[dict] = []

    async def exchange_code(self, **kwargs) -> TokenGrant:
        self.calls.append(kwargs)
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return self.grant

    async def refresh(self, *, refresh_token: str, user_id: str) -> TokenGrant:  # pragma: no cover
        raise AssertionError("refresh is not part of the callback flow")


class Harness:
    def __init__(self, tmp_path: Path, exchanger: FakeExchanger, **oauth_overrides) -> None:
        self.store = SQLiteStore(str(tmp_path / "oauth.db"))
        self.settings = OAuthSettings(**oauth_overrides)
        self.exchanger = exchanger
        self.handshakes = HandshakeService(self.store, self.settings)
        self.tokens = ZoomTokenService(
            store=self.store,
            exchanger=exchanger,
            token_cipher=TokenCipherService(secret="secret-key"),
            oauth_settings=self.settings,
        )
        self.handler = OAuthCallbackHandler(
            handshakes=self.handshakes,
            exchanger=exchanger,
            token_service=self.tokens,
            oauth_settings=self.settings,
            redirect_uri=REDIRECT_URI,
        )


@pytest.fixture()
def harness(tmp_path: Path) -> Harness:
    return Harness(tmp_path, FakeExchanger())


@pytest.mark.asyncio
async def test_end_to_end_handshake_exchange_and_store(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1", "/zoom")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state),
        bound_state=handshake.state,
    )

    assert outcome.status is CallbackStatus.SUCCESS
    assert outcome.redirect_to == "/zoom"
    assert outcome.user_id == "u1"
    record = harness.tokens.get_record("u1")
    assert record.access_token == "AT1"
    assert record.refresh_token == "RT1"
    expected = utcnow() + timedelta(seconds=3600)
    assert abs((record.expires_at - expected).total_seconds()) < 5
    assert harness.store.count_handshakes() == 0

    call = harness.exchanger.calls[0]
    assert call["code"] == "abc"
    assert call["redirect_uri"] == REDIRECT_URI
    assert call["code_verifier"] == handshake.code_verifier
    assert call["state"] == handshake.state
    assert call["user_id"] == "u1"


@pytest.mark.asyncio
async def test_provider_error_is_surfaced_without_exchange(harness: Harness) -> None:
    outcome = await harness.handler.handle(
        OAuthCallbackPayload(error="access_denied", error_description="The user denied access")
    )

    assert outcome.status is CallbackStatus.ERROR
    assert outcome.error == "provider_denied"
    assert outcome.message == "The user denied access"
    assert harness.exchanger.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"code": "abc"}, {"state": "xyz"}, {}])
async def test_missing_code_or_state_is_malformed(harness: Harness, payload: dict) -> None:
    outcome = await harness.handler.handle(OAuthCallbackPayload(**payload), bound_state="xyz")

    assert outcome.error == "malformed_callback"
    assert harness.exchanger.calls == []


@pytest.mark.asyncio
async def test_state_mismatch_fails_csrf_and_never_calls_relay(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state="forged-state"),
        bound_state=handshake.state,
    )

    assert outcome.status is CallbackStatus.ERROR
    assert outcome.error == "csrf_validation_failed"
    assert harness.exchanger.calls == []
    assert harness.tokens.connection_status("u1").connected is False


@pytest.mark.asyncio
async def test_lenient_state_mode_logs_and_continues(tmp_path: Path) -> None:
    harness = Harness(tmp_path, FakeExchanger(), strict_state=False)
    handshake = harness.handshakes.begin("u1")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state="mismatched"),
        bound_state=handshake.state,
    )

    assert outcome.status is CallbackStatus.SUCCESS
    assert len(harness.exchanger.calls) == 1


@pytest.mark.asyncio
async def test_reused_state_reports_missing_handshake(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1")
    payload = OAuthCallbackPayload(code="abc", state=handshake.state)

    first = await harness.handler.handle(payload, bound_state=handshake.state)
    second = await harness.handler.handle(payload, bound_state=handshake.state)

    assert first.status is CallbackStatus.SUCCESS
    assert second.error == "handshake_expired_or_missing"
    assert len(harness.exchanger.calls) == 1


@pytest.mark.asyncio
async def test_concurrent_deliveries_exchange_only_once(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1")
    payload = OAuthCallbackPayload(code="abc", state=handshake.state)

    outcomes = await asyncio.gather(
        harness.handler.handle(payload, bound_state=handshake.state),
        harness.handler.handle(payload, bound_state=handshake.state),
    )

    statuses = sorted(outcome.status.value for outcome in outcomes)
    assert statuses == ["error", "success"]
    assert len(harness.exchanger.calls) == 1


@pytest.mark.asyncio
async def test_expired_handshake_is_rejected_even_with_matching_state(harness: Harness) -> None:
    harness.store.save_handshake(
        OAuthHandshake(state="old-state", user_id="u1", created_at=utcnow() - timedelta(seconds=301))
    )

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state="old-state"), bound_state="old-state"
    )

    assert outcome.error == "handshake_expired_or_missing"
    assert harness.exchanger.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "kind", "upstream_status"),
    [
        (UpstreamHTTPError(400, "bad code"), "upstream_http_error", 400),
        (UpstreamUnreachableError(), "upstream_unreachable", None),
    ],
)
async def test_relay_failure_is_terminal_and_consumes_handshake(
    tmp_path: Path, error: Exception, kind: str, upstream_status
) -> None:
    harness = Harness(tmp_path, FakeExchanger(error=error))
    handshake = harness.handshakes.begin("u1")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state), bound_state=handshake.state
    )

    assert outcome.status is CallbackStatus.ERROR
    assert outcome.error == kind
    assert outcome.upstream_status == upstream_status
    assert harness.store.count_handshakes() == 0
    assert harness.tokens.connection_status("u1").connected is False


@pytest.mark.asyncio
async def test_session_binding_is_used_when_cookie_is_missing(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state), session_user_id="u1"
    )

    assert outcome.status is CallbackStatus.SUCCESS


@pytest.mark.asyncio
async def test_unbound_callback_is_rejected(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1")

    anonymous = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state)
    )
    other_user = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state), session_user_id="u2"
    )

    assert anonymous.error == "csrf_validation_failed"
    assert other_user.error == "csrf_validation_failed"
    assert harness.exchanger.calls == []


@pytest.mark.asyncio
async def test_prefer_session_policy_uses_signed_in_user(harness: Harness) -> None:
    handshake = harness.handshakes.begin("u1")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state),
        bound_state=handshake.state,
        session_user_id="u2",
    )

    assert outcome.user_id == "u2"
    assert harness.tokens.connection_status("u2").connected is True


@pytest.mark.asyncio
async def test_require_session_policy(tmp_path: Path) -> None:
    harness = Harness(tmp_path, FakeExchanger(), identity_policy=IdentityPolicy.REQUIRE_SESSION)

    first = harness.handshakes.begin("u1")
    no_session = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=first.state), bound_state=first.state
    )
    second = harness.handshakes.begin("u1")
    other_user = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=second.state),
        bound_state=second.state,
        session_user_id="u2",
    )
    third = harness.handshakes.begin("u1")
    same_user = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=third.state),
        bound_state=third.state,
        session_user_id="u1",
    )

    assert no_session.error == "identity_unresolved"
    assert other_user.error == "csrf_validation_failed"
    assert same_user.status is CallbackStatus.SUCCESS
    assert len(harness.exchanger.calls) == 1


@pytest.mark.asyncio
async def test_handshake_policy_ignores_session(tmp_path: Path) -> None:
    harness = Harness(tmp_path, FakeExchanger(), identity_policy=IdentityPolicy.HANDSHAKE)
    handshake = harness.handshakes.begin("u1")

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state),
        bound_state=handshake.state,
        session_user_id="u2",
    )

    assert outcome.user_id == "u1"


@pytest.mark.asyncio
async def test_anonymous_handshake_without_session_cannot_resolve_identity(
    harness: Harness,
) -> None:
    handshake = harness.handshakes.begin(None)

    outcome = await harness.handler.handle(
        OAuthCallbackPayload(code="abc", state=handshake.state), bound_state=handshake.state
    )

    assert outcome.error == "identity_unresolved"
    assert harness.exchanger.calls == []
