"""
Helpers for storing, refreshing and revoking Zoom OAuth tokens.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime, timedelta
from typing import Optional

from centrinote.clients.relay import TokenExchanger
from centrinote.clients.sqlite_store import SQLiteStore
from centrinote.clients.zoom_auth import ZoomOAuthClient
from centrinote.core.config import OAuthSettings
from centrinote.core.errors import (
    ReauthorizationRequiredError,
    TokenRecordNotFoundError,
    UpstreamHTTPError,
)
from centrinote.core.logging import mask_secret
from centrinote.models.oauth import TokenGrant, TokenRecord, utcnow
from centrinote.schemas.auth import ConnectionStatus, TokenStats
from centrinote.services.token_cipher import TokenCipherService, TokenDecryptionError

logger = logging.getLogger(__name__)


class ZoomTokenService:
    """Manages access to persisted Zoom OAuth tokens."""

    PROVIDER = "zoom"
    # Statuses with which the provider rejects a revoked or expired refresh token.
    _REJECTED_REFRESH_STATUSES = frozenset({400, 401})

    def __init__(
        self,
        store: SQLiteStore,
        exchanger: TokenExchanger,
        token_cipher: TokenCipherService,
        oauth_settings: OAuthSettings,
        oauth_client: Optional[ZoomOAuthClient] = None,
    ) -> None:
        self._store = store
        self._exchanger = exchanger
        self._cipher = token_cipher
        self._settings = oauth_settings
        self._oauth_client = oauth_client
        # Entries vanish once no coroutine holds or awaits the user's lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _user_lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def _load(self, user_id: str) -> Optional[TokenRecord]:
        row = self._store.get_token_row(user_id=user_id, provider=self.PROVIDER)
        if row is None:
            return None
        try:
            access_token = self._cipher.decrypt(row["access_token_encrypted"])
            refresh_token = self._cipher.decrypt(row["refresh_token_encrypted"])
        except TokenDecryptionError as exc:
            logger.error("Stored Zoom tokens for user %s cannot be decrypted", user_id)
            raise ReauthorizationRequiredError() from exc
        return TokenRecord(
            user_id=row["user_id"],
            provider=row["provider"],
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.fromisoformat(row["expires_at"]),
            scope=row["scope"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _save(self, record: TokenRecord) -> None:
        self._store.upsert_token_row(
            {
                "user_id": record.user_id,
                "provider": record.provider,
                "access_token_encrypted": self._cipher.encrypt(record.access_token),
                "refresh_token_encrypted": self._cipher.encrypt(record.refresh_token),
                "expires_at": record.expires_at,
                "scope": record.scope,
                "created_at": record.created_at,
                "updated_at": record.updated_at,
            }
        )

    def get_record(self, user_id: str) -> TokenRecord:
        record = self._load(user_id)
        if record is None:
            raise TokenRecordNotFoundError()
        return record

    def store_grant(
        self, user_id: str, grant: TokenGrant, issued_at: Optional[datetime] = None
    ) -> TokenRecord:
        """Persist the tokens from a successful code exchange, replacing any prior record."""
        previous = self._load_quietly(user_id)
        record = TokenRecord.from_grant(
            user_id=user_id,
            grant=grant,
            issued_at=issued_at or utcnow(),
            previous=previous,
        )
        self._save(record)
        logger.info(
            "Stored Zoom tokens for user %s (access %s, expires %s)",
            user_id,
            mask_secret(record.access_token),
            record.expires_at.isoformat(),
        )
        return record

    async def get_valid_token(self, user_id: str) -> str:
        """Return a usable access token, refreshing it when it has expired."""
        record = self.get_record(user_id)
        leeway = self._settings.refresh_leeway_seconds
        if not record.is_expired(leeway):
            return record.access_token

        async with self._user_lock(user_id):
            # Another request may have refreshed while we waited for the lock.
            current = self.get_record(user_id)
            if not current.is_expired(leeway):
                return current.access_token
            try:
                refreshed = await self._refresh_record(current)
            except ReauthorizationRequiredError:
                refreshed = await self._retry_after_concurrent_refresh(current)
        return refreshed.access_token

    async def refresh(self, user_id: str) -> TokenRecord:
        """Exchange the stored refresh token for a new token pair and persist it."""
        async with self._user_lock(user_id):
            record = self.get_record(user_id)
            try:
                return await self._refresh_record(record)
            except ReauthorizationRequiredError:
                return await self._retry_after_concurrent_refresh(record)

    async def _refresh_record(self, record: TokenRecord) -> TokenRecord:
        issued_at = utcnow()
        try:
            grant = await self._exchanger.refresh(
                refresh_token=record.refresh_token, user_id=record.user_id
            )
        except UpstreamHTTPError as exc:
            if exc.status_code in self._REJECTED_REFRESH_STATUSES:
                logger.warning(
                    "Zoom rejected refresh token %s for user %s; reauthorization required",
                    mask_secret(record.refresh_token),
                    record.user_id,
                )
                raise ReauthorizationRequiredError() from exc
            raise

        updated = TokenRecord.from_grant(
            user_id=record.user_id, grant=grant, issued_at=issued_at, previous=record
        )
        self._save(updated)
        logger.info("Refreshed Zoom access token for user %s", record.user_id)
        return updated

    async def _retry_after_concurrent_refresh(self, attempted: TokenRecord) -> TokenRecord:
        """Re-read the record once; another process may have rotated the refresh token."""
        latest = self._load(attempted.user_id)
        if latest is None:
            raise ReauthorizationRequiredError()
        if (
            latest.refresh_token == attempted.refresh_token
            and latest.updated_at == attempted.updated_at
        ):
            raise ReauthorizationRequiredError()
        if not latest.is_expired(self._settings.refresh_leeway_seconds):
            return latest
        logger.info("Retrying refresh with rotated token for user %s", attempted.user_id)
        return await self._refresh_record(latest)

    async def disconnect(self, user_id: str) -> bool:
        """Revoke and delete the user's tokens. Returns whether a record existed."""
        record = self._load_quietly(user_id)
        if record is not None and self._oauth_client is not None:
            await self._oauth_client.revoke_token(record.access_token)
        removed = self._store.delete_token_row(user_id=user_id, provider=self.PROVIDER)
        if removed:
            logger.info("Disconnected Zoom for user %s", user_id)
        return removed

    def connection_status(self, user_id: str) -> ConnectionStatus:
        record = self._load_quietly(user_id)
        if record is None:
            return ConnectionStatus(connected=False)
        return ConnectionStatus(
            connected=True,
            expired=record.is_expired(),
            expires_at=record.expires_at,
            scope=record.scope,
            updated_at=record.updated_at,
        )

    def cleanup_expired(self, grace_seconds: int = 3600) -> int:
        """Delete records whose access token expired more than ``grace_seconds`` ago."""
        cutoff = utcnow() - timedelta(seconds=grace_seconds)
        removed = self._store.delete_tokens_expired_before(provider=self.PROVIDER, cutoff=cutoff)
        if removed:
            logger.info("Removed %s stale Zoom token records", removed)
        return removed

    def token_stats(self) -> TokenStats:
        now = utcnow()
        rows = self._store.list_token_rows(provider=self.PROVIDER)
        valid = sum(1 for row in rows if datetime.fromisoformat(row["expires_at"]) > now)
        return TokenStats(total=len(rows), valid=valid, expired=len(rows) - valid)

    def _load_quietly(self, user_id: str) -> Optional[TokenRecord]:
        try:
            return self._load(user_id)
        except ReauthorizationRequiredError:
            return None


__all__ = ["ZoomTokenService"]
