"""Delegated Google Drive tokens per user."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from reelrelay.users.types import CredentialSet, DelegatedToken


class UserCredentialRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def get_user_credentials(self, user_id: str) -> CredentialSet | None:
        row = self._db.execute("SELECT * FROM users WHERE user_id = ?", (user_id,)).fetchone()
        if not row:
            return None
        delegated = None
        if row["drive_access_token"]:
            expiry = row["drive_token_expiry"]
            delegated = DelegatedToken(
                access_token=row["drive_access_token"],
                refresh_token=row["drive_refresh_token"],
                expires_at=datetime.fromisoformat(expiry) if expiry else None,
            )
        return CredentialSet(user_id=user_id, delegated=delegated)

    def save_user_tokens(self, user_id: str, token: DelegatedToken) -> None:
        self._db.execute(
            """INSERT OR REPLACE INTO users
               (user_id, drive_access_token, drive_refresh_token, drive_token_expiry, updated_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                user_id,
                token.access_token,
                token.refresh_token,
                token.expires_at.isoformat() if token.expires_at else None,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        self._db.commit()

    def update_user_access_token(self, user_id: str, access_token: str, expires_at: datetime) -> None:
        """Store a refreshed access token; the refresh token is left untouched."""
        cursor = self._db.execute(
            """UPDATE users SET drive_access_token = ?, drive_token_expiry = ?, updated_at = ?
               WHERE user_id = ?""",
            (access_token, expires_at.isoformat(), datetime.now(timezone.utc).isoformat(), user_id),
        )
        self._db.commit()
        if cursor.rowcount == 0:
            raise LookupError(f"No credential record for user {user_id}")
