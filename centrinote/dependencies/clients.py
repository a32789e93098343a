"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from fastapi import Depends

from centrinote.clients import SQLiteStore, TokenExchanger, ZoomOAuthClient
from centrinote.clients.relay import build_token_exchanger
from centrinote.core.config import get_settings
from centrinote.services import (
    HandshakeService,
    OAuthCallbackHandler,
    SessionAuthenticator,
    TokenCipherService,
    ZoomTokenService,
)


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_zoom_oauth_client() -> ZoomOAuthClient:
    """Create a singleton Zoom OAuth client."""
    settings = _settings()
    return ZoomOAuthClient(settings.zoom, settings.oauth)


@lru_cache()
def get_token_exchanger() -> TokenExchanger:
    """Provide the direct or webhook-relayed exchange strategy."""
    settings = _settings()
    return build_token_exchanger(settings.zoom, settings.oauth, get_zoom_oauth_client())


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide the shared handshake and token store."""
    settings = _settings()
    return SQLiteStore(settings.token_db_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    return TokenCipherService.from_settings(_settings())


@lru_cache()
def get_handshake_service() -> HandshakeService:
    return HandshakeService(get_sqlite_store(), _settings().oauth)


@lru_cache()
def get_zoom_token_service() -> ZoomTokenService:
    """Provide helper for managing Zoom OAuth tokens."""
    settings = _settings()
    return ZoomTokenService(
        store=get_sqlite_store(),
        exchanger=get_token_exchanger(),
        token_cipher=get_token_cipher_service(),
        oauth_settings=settings.oauth,
        oauth_client=get_zoom_oauth_client(),
    )


def get_callback_handler(
    handshakes: HandshakeService = Depends(get_handshake_service),
    exchanger: TokenExchanger = Depends(get_token_exchanger),
    token_service: ZoomTokenService = Depends(get_zoom_token_service),
) -> OAuthCallbackHandler:
    """Build a callback handler wired to the shared services."""
    settings = _settings()
    return OAuthCallbackHandler(
        handshakes=handshakes,
        exchanger=exchanger,
        token_service=token_service,
        oauth_settings=settings.oauth,
        redirect_uri=str(settings.zoom.redirect_uri),
    )


@lru_cache()
def get_session_authenticator() -> SessionAuthenticator:
    return SessionAuthenticator(_settings().security)


__all__ = [
    "get_callback_handler",
    "get_handshake_service",
    "get_session_authenticator",
    "get_sqlite_store",
    "get_token_cipher_service",
    "get_token_exchanger",
    "get_zoom_oauth_client",
    "get_zoom_token_service",
]
