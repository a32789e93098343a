"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_callback_handler,
    get_handshake_service,
    get_session_authenticator,
    get_sqlite_store,
    get_token_cipher_service,
    get_token_exchanger,
    get_zoom_oauth_client,
    get_zoom_token_service,
)
from .config import SettingsDependency, get_app_settings, get_session_user_id

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_callback_handler",
    "get_handshake_service",
    "get_session_authenticator",
    "get_session_user_id",
    "get_sqlite_store",
    "get_token_cipher_service",
    "get_token_exchanger",
    "get_zoom_oauth_client",
    "get_zoom_token_service",
]
