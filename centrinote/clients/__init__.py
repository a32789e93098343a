"""Expose constructed client wrappers."""

from .relay import DirectTokenExchanger, TokenExchanger, WebhookRelayExchanger
from .sqlite_store import SQLiteStore
from .zoom_auth import ZoomOAuthClient

__all__ = [
    "DirectTokenExchanger",
    "SQLiteStore",
    "TokenExchanger",
    "WebhookRelayExchanger",
    "ZoomOAuthClient",
]
