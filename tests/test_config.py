try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest
from pydantic import ValidationError

from centrinote.core.config import AppSettings, IdentityPolicy, OAuthSettings, ZoomSettings


def test_oauth_defaults() -> None:
    settings = OAuthSettings()

    assert settings.state_ttl_seconds == 300
    assert settings.pkce_enabled is True
    assert settings.strict_state is True
    assert settings.identity_policy is IdentityPolicy.PREFER_SESSION
    assert settings.refresh_leeway_seconds == 0


def test_oauth_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_STATE_TTL", "120")
    monkeypatch.setenv("OAUTH_IDENTITY_POLICY", "require_session")
    monkeypatch.setenv("OAUTH_PKCE_ENABLED", "false")

    settings = OAuthSettings()

    assert settings.state_ttl_seconds == 120
    assert settings.identity_policy is IdentityPolicy.REQUIRE_SESSION
    assert settings.pkce_enabled is False


def test_scopes_accept_comma_or_space_separated_strings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZOOM_SCOPES", "meeting:read, recording:read user:read")

    assert ZoomSettings().scopes == ("meeting:read", "recording:read", "user:read")


def test_legacy_variable_names_are_accepted(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("ZOOM_CLIENT_ID", "ZOOM_CLIENT_SECRET", "ZOOM_REDIRECT_URI"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CLIENT_ID", "legacy-id")
    monkeypatch.setenv("CLIENT_SECRET", "legacy-secret")
    monkeypatch.setenv("REDIRECT_URI", "https://legacy.example.com/callback")
    monkeypatch.setenv("N8N_ZOOM_OAUTH_WEBHOOK", "https://n8n.example.com/webhook/zoom")

    settings = ZoomSettings()

    assert settings.client_id == "legacy-id"
    assert settings.client_secret == "legacy-secret"
    assert str(settings.relay_webhook_url) == "https://n8n.example.com/webhook/zoom"


def test_blank_revoke_url_disables_revocation(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ZOOM_REVOKE_URL", "")

    assert ZoomSettings().revoke_url is None


def test_production_refuses_lenient_state(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("OAUTH_STRICT_STATE", "false")

    with pytest.raises(ValidationError):
        AppSettings()


def test_development_allows_lenient_state(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("OAUTH_STRICT_STATE", "false")

    settings = AppSettings()

    assert settings.is_production is False
    assert settings.oauth.strict_state is False


def test_production_refuses_query_user_id(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("OAUTH_ALLOW_QUERY_USER_ID", "true")

    with pytest.raises(ValidationError):
        AppSettings()


def test_query_user_id_is_off_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OAUTH_ALLOW_QUERY_USER_ID", raising=False)

    assert OAuthSettings().allow_query_user_id is False
