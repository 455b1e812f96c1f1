"""Upload credential strategies and ordered fallback.

A user's own OAuth token is tried first when one is stored; the process-wide
service account is always the last resort.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials

from reelrelay.errors import DelegatedCredentialInvalid, ServiceCredentialMissing, UploadFailed
from reelrelay.infrastructure.config import DRIVE_SCOPES, GOOGLE_TOKEN_URI, RelaySettings
from reelrelay.infrastructure.logger import logger
from reelrelay.storage.drive import DriveClient
from reelrelay.storage.types import RemoteAsset, StrategyName
from reelrelay.users.repository import UserCredentialRepository
from reelrelay.users.types import DelegatedToken

RefreshFn = Callable[[str, str, str], tuple[str, datetime | None]]
DriveFactory = Callable[[Any, StrategyName], DriveClient]

DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


def refresh_access_token(refresh_token: str, client_id: str, client_secret: str) -> tuple[str, datetime | None]:
    """Exchange a refresh token for a new access token. Blocking."""
    creds = Credentials(
        token=None,
        refresh_token=refresh_token,
        token_uri=GOOGLE_TOKEN_URI,
        client_id=client_id,
        client_secret=client_secret,
    )
    creds.refresh(Request())
    # google-auth reports expiry as naive UTC
    expiry = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None
    return creds.token, expiry


class UploadStrategy(ABC):
    name: StrategyName

    @abstractmethod
    async def client(self) -> DriveClient: ...

    async def upload(self, local_path: Path, file_name: str, mime_type: str, folder_id: str) -> RemoteAsset:
        drive = await self.client()
        await drive.validate_folder(folder_id)
        return await drive.upload_file(local_path, file_name, mime_type, folder_id)


class DelegatedTokenStrategy(UploadStrategy):
    name: StrategyName = "delegated"

    def __init__(
        self,
        user_id: str,
        token: DelegatedToken,
        credential_repo: UserCredentialRepository,
        client_id: str | None,
        client_secret: str | None,
        refresh_fn: RefreshFn = refresh_access_token,
        drive_factory: DriveFactory = DriveClient.from_credentials,
    ) -> None:
        self._user_id = user_id
        self._token = token
        self._credential_repo = credential_repo
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_fn = refresh_fn
        self._drive_factory = drive_factory

    @property
    def token(self) -> DelegatedToken:
        return self._token

    async def access_token(self) -> str:
        """Current access token, refreshed and persisted first if it has expired."""
        if not self._token.is_expired():
            return self._token.access_token
        if not self._token.refreshable:
            raise DelegatedCredentialInvalid(
                "Google Drive token expired and no refresh token is stored. Reconnect Google Drive.",
                {"user_id": self._user_id},
            )
        if not self._client_id or not self._client_secret:
            raise DelegatedCredentialInvalid(
                "GOOGLE_OAUTH_CLIENT_ID / GOOGLE_OAUTH_CLIENT_SECRET are not configured; cannot refresh token.",
                {"user_id": self._user_id},
            )

        logger.info("Refreshing Google Drive access token", user_id=self._user_id)
        loop = asyncio.get_event_loop()
        try:
            new_token, expires_at = await loop.run_in_executor(
                None, self._refresh_fn, self._token.refresh_token, self._client_id, self._client_secret
            )
        except RefreshError as err:
            raise DelegatedCredentialInvalid(
                f"Google Drive token refresh was rejected: {err}. Reconnect Google Drive.",
                {"user_id": self._user_id},
            ) from err

        expires_at = expires_at or datetime.now(timezone.utc) + DEFAULT_TOKEN_LIFETIME
        self._credential_repo.update_user_access_token(self._user_id, new_token, expires_at)
        self._token = self._token.model_copy(update={"access_token": new_token, "expires_at": expires_at})
        logger.info("Google Drive access token refreshed", user_id=self._user_id, expires_at=expires_at.isoformat())
        return new_token

    async def client(self) -> DriveClient:
        token = await self.access_token()
        return self._drive_factory(Credentials(token=token), self.name)


class ServiceAccountStrategy(UploadStrategy):
    name: StrategyName = "service"

    def __init__(
        self,
        service_account_file: Path | None,
        scopes: list[str] | None = None,
        drive_factory: DriveFactory = DriveClient.from_credentials,
    ) -> None:
        self._service_account_file = service_account_file
        self._scopes = scopes or list(DRIVE_SCOPES)
        self._drive_factory = drive_factory

    async def client(self) -> DriveClient:
        if self._service_account_file is None or not self._service_account_file.exists():
            raise ServiceCredentialMissing()
        creds = service_account.Credentials.from_service_account_file(
            str(self._service_account_file), scopes=self._scopes
        )
        return self._drive_factory(creds, self.name)


class UploadStrategyFactory:
    def __init__(
        self,
        credential_repo: UserCredentialRepository,
        settings: RelaySettings,
        refresh_fn: RefreshFn = refresh_access_token,
        drive_factory: DriveFactory = DriveClient.from_credentials,
    ) -> None:
        self._credential_repo = credential_repo
        self._settings = settings
        self._refresh_fn = refresh_fn
        self._drive_factory = drive_factory

    def for_user(self, user_id: str) -> list[UploadStrategy]:
        strategies: list[UploadStrategy] = []
        creds = self._credential_repo.get_user_credentials(user_id)
        if creds is not None and creds.delegated is not None:
            strategies.append(
                DelegatedTokenStrategy(
                    user_id,
                    creds.delegated,
                    self._credential_repo,
                    self._settings.oauth_client_id,
                    self._settings.oauth_client_secret,
                    refresh_fn=self._refresh_fn,
                    drive_factory=self._drive_factory,
                )
            )
        strategies.append(
            ServiceAccountStrategy(
                self._settings.service_account_file,
                self._settings.drive_scopes,
                drive_factory=self._drive_factory,
            )
        )
        return strategies


async def upload_with_fallback(
    strategies: list[UploadStrategy],
    local_path: Path,
    file_name: str,
    mime_type: str,
    folder_id: str,
) -> RemoteAsset:
    """Try each strategy once, in order. Raises UploadFailed naming every failure."""
    failures: list[tuple[str, Exception]] = []
    for strategy in strategies:
        try:
            return await strategy.upload(local_path, file_name, mime_type, folder_id)
        except Exception as err:
            logger.warning("Upload strategy failed", strategy=strategy.name, folder_id=folder_id, error=str(err))
            failures.append((strategy.name, err))
    raise UploadFailed(failures)
