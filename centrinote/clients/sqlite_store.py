"""SQLite persistence for pending OAuth handshakes and encrypted token records."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from centrinote.models.oauth import OAuthHandshake


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteStore:
    """Stores handshakes keyed by ``state`` and one token row per (user, provider)."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_handshakes (
                    state TEXT PRIMARY KEY,
                    code_verifier TEXT,
                    code_challenge TEXT,
                    user_id TEXT,
                    redirect_path TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS token_records (
                    user_id TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    access_token_encrypted TEXT NOT NULL,
                    refresh_token_encrypted TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    scope TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, provider)
                )
                """
            )

    # Handshakes

    def save_handshake(self, handshake: OAuthHandshake) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_handshakes
                    (state, code_verifier, code_challenge, user_id, redirect_path, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    handshake.state,
                    handshake.code_verifier,
                    handshake.code_challenge,
                    handshake.user_id,
                    handshake.redirect_path,
                    _iso(handshake.created_at),
                ),
            )

    def get_handshake(self, state: str) -> Optional[OAuthHandshake]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM oauth_handshakes WHERE state = ?", (state,)
            ).fetchone()
        return OAuthHandshake(**dict(row)) if row else None

    def consume_handshake(self, state: str) -> Optional[OAuthHandshake]:
        """Delete and return the handshake; ``None`` when another caller got it first."""
        with self._connect() as conn:
            rows = conn.execute(
                "DELETE FROM oauth_handshakes WHERE state = ? RETURNING *", (state,)
            ).fetchall()
        return OAuthHandshake(**dict(rows[0])) if rows else None

    def delete_handshake(self, state: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM oauth_handshakes WHERE state = ?", (state,))

    def purge_handshakes_created_before(self, cutoff: datetime) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM oauth_handshakes WHERE created_at < ?", (_iso(cutoff),)
            )
        return cursor.rowcount

    def count_handshakes(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM oauth_handshakes").fetchone()
        return int(row["total"])

    # Token records

    def upsert_token_row(self, row: Dict[str, Any]) -> None:
        missing = [
            key
            for key in ("user_id", "provider", "access_token_encrypted", "refresh_token_encrypted")
            if not row.get(key)
        ]
        if missing:
            raise ValueError(f"Token row is missing required fields: {', '.join(missing)}")

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO token_records (
                    user_id, provider, access_token_encrypted, refresh_token_encrypted,
                    expires_at, scope, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, provider) DO UPDATE SET
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = excluded.refresh_token_encrypted,
                    expires_at = excluded.expires_at,
                    scope = excluded.scope,
                    updated_at = excluded.updated_at
                """,
                (
                    row["user_id"],
                    row["provider"],
                    row["access_token_encrypted"],
                    row["refresh_token_encrypted"],
                    _iso(row["expires_at"]),
                    row.get("scope"),
                    _iso(row["created_at"]),
                    _iso(row["updated_at"]),
                ),
            )

    def get_token_row(self, *, user_id: str, provider: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM token_records WHERE user_id = ? AND provider = ?",
                (user_id, provider),
            ).fetchone()
        return dict(row) if row else None

    def delete_token_row(self, *, user_id: str, provider: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM token_records WHERE user_id = ? AND provider = ?",
                (user_id, provider),
            )
        return cursor.rowcount > 0

    def list_token_rows(self, *, provider: str) -> list[Dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM token_records WHERE provider = ?", (provider,)
            ).fetchall()
        return [dict(row) for row in rows]

    def delete_tokens_expired_before(self, *, provider: str, cutoff: datetime) -> int:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM token_records WHERE provider = ? AND expires_at < ?",
                (provider, _iso(cutoff)),
            )
        return cursor.rowcount


__all__ = ["SQLiteStore"]
