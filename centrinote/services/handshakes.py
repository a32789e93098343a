"""
Creation and single-use consumption of pending OAuth handshakes.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from centrinote.clients.pkce import derive_code_challenge, generate_code_verifier, generate_state
from centrinote.clients.sqlite_store import SQLiteStore
from centrinote.core.config import OAuthSettings
from centrinote.core.logging import mask_secret
from centrinote.models.oauth import OAuthHandshake, utcnow

logger = logging.getLogger(__name__)


class HandshakeService:
    """Owns the server-side handshake store keyed by ``state``."""

    def __init__(self, store: SQLiteStore, oauth_settings: OAuthSettings) -> None:
        self._store = store
        self._settings = oauth_settings

    @property
    def ttl_seconds(self) -> int:
        return self._settings.state_ttl_seconds

    def safe_redirect_path(self, redirect_path: Optional[str]) -> str:
        """Only same-site absolute paths are allowed as post-login targets."""
        default = self._settings.default_redirect_path
        if not redirect_path:
            return default
        if not redirect_path.startswith("/") or redirect_path.startswith("//"):
            return default
        if "\\" in redirect_path or "\n" in redirect_path or "\r" in redirect_path:
            return default
        return redirect_path

    def begin(self, user_id: Optional[str], redirect_path: Optional[str] = None) -> OAuthHandshake:
        """Create and persist a fresh handshake immediately before the redirect."""
        code_verifier = code_challenge = None
        if self._settings.pkce_enabled:
            code_verifier = generate_code_verifier()
            code_challenge = derive_code_challenge(code_verifier)

        handshake = OAuthHandshake(
            state=generate_state(),
            code_verifier=code_verifier,
            code_challenge=code_challenge,
            user_id=user_id,
            redirect_path=self.safe_redirect_path(redirect_path),
        )
        self._store.save_handshake(handshake)
        logger.info(
            "Started Zoom OAuth handshake %s for user %s (pkce=%s)",
            mask_secret(handshake.state),
            user_id or "<anonymous>",
            bool(code_challenge),
        )
        return handshake

    def find_pending(self, state: str) -> Optional[OAuthHandshake]:
        """Return the live handshake for ``state``; expired ones are dropped."""
        handshake = self._store.get_handshake(state)
        if handshake is None:
            return None
        if handshake.is_expired(self.ttl_seconds):
            logger.info("Discarding expired handshake %s", mask_secret(state))
            self._store.delete_handshake(state)
            return None
        return handshake

    def consume(self, state: str) -> Optional[OAuthHandshake]:
        """Atomically remove the handshake so it can never be used twice."""
        handshake = self._store.consume_handshake(state)
        if handshake is None or handshake.is_expired(self.ttl_seconds):
            return None
        return handshake

    def purge_expired(self) -> int:
        cutoff = utcnow() - timedelta(seconds=self.ttl_seconds)
        removed = self._store.purge_handshakes_created_before(cutoff)
        if removed:
            logger.info("Purged %s expired OAuth handshakes", removed)
        return removed


__all__ = ["HandshakeService"]
