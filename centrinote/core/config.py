"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the maintenance scripts and
the tests share a consistent configuration surface.
"""

from enum import Enum
from functools import lru_cache
from typing import Annotated, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_BASE_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class IdentityPolicy(str, Enum):
    """How the owning user is chosen when an OAuth callback completes."""

    PREFER_SESSION = "prefer_session"
    REQUIRE_SESSION = "require_session"
    HANDSHAKE = "handshake"


class ZoomSettings(BaseSettings):
    """Configuration required for talking to Zoom's OAuth endpoints."""

    model_config = _BASE_CONFIG

    client_id: str = Field(..., validation_alias=AliasChoices("ZOOM_CLIENT_ID", "CLIENT_ID"))
    client_secret: str = Field(
        ..., validation_alias=AliasChoices("ZOOM_CLIENT_SECRET", "CLIENT_SECRET")
    )
    redirect_uri: AnyHttpUrl = Field(
        ..., validation_alias=AliasChoices("ZOOM_REDIRECT_URI", "REDIRECT_URI")
    )
    authorize_url: AnyHttpUrl = Field(
        "https://zoom.us/oauth/authorize", validation_alias="ZOOM_AUTHORIZE_URL"
    )
    token_url: AnyHttpUrl = Field(
        "https://zoom.us/oauth/token",
        validation_alias=AliasChoices("ZOOM_TOKEN_URL", "TOKEN_ENDPOINT_URL"),
    )
    api_base_url: AnyHttpUrl = Field(
        "https://api.zoom.us/v2", validation_alias="ZOOM_API_BASE_URL"
    )
    revoke_url: Optional[AnyHttpUrl] = Field(
        "https://zoom.us/oauth/revoke",
        validation_alias="ZOOM_REVOKE_URL",
        description="Endpoint used to revoke tokens on disconnect; empty disables it.",
    )
    relay_webhook_url: Optional[AnyHttpUrl] = Field(
        None,
        validation_alias=AliasChoices("RELAY_WEBHOOK_URL", "N8N_ZOOM_OAUTH_WEBHOOK"),
        description="When set, code exchange and refresh go through this webhook.",
    )
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("meeting:read", "meeting:write", "user:read"),
        validation_alias="ZOOM_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        """Support providing scopes as a comma or space separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope for scope in value.replace(",", " ").split() if scope)

    @field_validator("revoke_url", "relay_webhook_url", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Optional[str]) -> Optional[str]:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class OAuthSettings(BaseSettings):
    """OAuth handshake and token lifecycle configuration."""

    model_config = _BASE_CONFIG

    state_ttl_seconds: int = Field(300, validation_alias="OAUTH_STATE_TTL", gt=0)
    pkce_enabled: bool = Field(True, validation_alias="OAUTH_PKCE_ENABLED")
    strict_state: bool = Field(
        True,
        validation_alias="OAUTH_STRICT_STATE",
        description="Disable only while debugging locally; production refuses it.",
    )
    identity_policy: IdentityPolicy = Field(
        IdentityPolicy.PREFER_SESSION, validation_alias="OAUTH_IDENTITY_POLICY"
    )
    refresh_leeway_seconds: int = Field(0, validation_alias="OAUTH_REFRESH_LEEWAY", ge=0)
    default_redirect_path: str = Field(
        "/dashboard", validation_alias="OAUTH_DEFAULT_REDIRECT_PATH"
    )
    http_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_HTTP_TIMEOUT")
    cookie_name: str = Field("zoom_oauth_state", validation_alias="OAUTH_COOKIE_NAME")
    allow_query_user_id: bool = Field(
        False,
        validation_alias="OAUTH_ALLOW_QUERY_USER_ID",
        description=(
            "Trust an unauthenticated ?user_id= on the Zoom routes. Local development "
            "only; production refuses it."
        ),
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _BASE_CONFIG

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )
    supabase_jwt_secret: Optional[str] = Field(
        None,
        validation_alias="SUPABASE_JWT_SECRET",
        description="HS256 secret used to verify Supabase session tokens.",
    )
    supabase_jwt_audience: str = Field(
        "authenticated", validation_alias="SUPABASE_JWT_AUDIENCE"
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _BASE_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    token_db_path: str = Field("data/centrinote.db", validation_alias="TOKEN_DB_PATH")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    zoom: ZoomSettings = Field(default_factory=ZoomSettings)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"production", "prod"}

    @model_validator(mode="after")
    def _forbid_development_shortcuts_in_production(self) -> "AppSettings":
        if self.is_production and not self.oauth.strict_state:
            raise ValueError(
                "OAUTH_STRICT_STATE=false is not allowed when APP_ENV=production."
            )
        if self.is_production and self.oauth.allow_query_user_id:
            raise ValueError(
                "OAUTH_ALLOW_QUERY_USER_ID=true is not allowed when APP_ENV=production."
            )
        return self

    @classmethod
    def from_env_file(cls, env_file: str) -> "AppSettings":
        """Build settings from an explicit env file; process environment still wins."""
        return cls(
            _env_file=env_file,
            security=SecuritySettings(_env_file=env_file),
            oauth=OAuthSettings(_env_file=env_file),
            zoom=ZoomSettings(_env_file=env_file),  # type: ignore[call-arg]
        )


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "IdentityPolicy",
    "OAuthSettings",
    "SecuritySettings",
    "ZoomSettings",
    "get_settings",
]
