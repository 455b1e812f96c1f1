"""Per-user storage credentials."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel


class DelegatedToken(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None  # None: no known expiry, treated as valid

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    @property
    def refreshable(self) -> bool:
        return bool(self.refresh_token)


class CredentialSet(BaseModel):
    user_id: str
    delegated: DelegatedToken | None = None
