"""Google Drive v3 client wrapper.

The googleapiclient calls are blocking, so every request runs in the default
executor. HTTP failures are mapped onto the storage error taxonomy by status.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload

from reelrelay.errors import (
    DelegatedCredentialInvalid,
    FolderNotFound,
    FolderPermissionDenied,
    NotAFolder,
    StorageError,
)
from reelrelay.infrastructure.logger import logger
from reelrelay.storage.types import RemoteAsset, StrategyName

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def http_status(err: HttpError) -> int | None:
    resp = getattr(err, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


class DriveClient:
    def __init__(self, service: Any, strategy: StrategyName = "service") -> None:
        self._drive = service
        self.strategy = strategy

    @classmethod
    def from_credentials(cls, credentials: Any, strategy: StrategyName) -> DriveClient:
        return cls(build("drive", "v3", credentials=credentials, cache_discovery=False), strategy)

    async def validate_folder(self, folder_id: str) -> dict[str, Any]:
        loop = asyncio.get_event_loop()

        def _get():
            return (
                self._drive.files()
                .get(fileId=folder_id, fields="id, name, mimeType", supportsAllDrives=True)
                .execute()
            )

        try:
            folder = await loop.run_in_executor(None, _get)
        except HttpError as err:
            status = http_status(err)
            if status == 404:
                raise FolderNotFound(folder_id) from err
            if status == 403:
                raise FolderPermissionDenied(folder_id) from err
            if status == 401:
                raise DelegatedCredentialInvalid(
                    "Google Drive authorization is invalid or expired. Reconnect Google Drive.",
                    {"folder_id": folder_id},
                ) from err
            raise StorageError(f"Could not check folder {folder_id}: {err}", {"folder_id": folder_id}) from err

        if folder.get("mimeType") != FOLDER_MIME_TYPE:
            raise NotAFolder(folder_id, folder.get("mimeType"))
        return folder

    async def upload_file(self, local_path: Path, file_name: str, mime_type: str, folder_id: str) -> RemoteAsset:
        """Resumable upload of ``local_path`` into ``folder_id``. The local file is left in place."""
        if not local_path.exists():
            raise StorageError(f"File not found: {local_path}", {"path": str(local_path)})

        loop = asyncio.get_event_loop()

        def _create():
            media = MediaFileUpload(str(local_path), mimetype=mime_type, resumable=True)
            return (
                self._drive.files()
                .create(
                    body={"name": file_name, "parents": [folder_id], "mimeType": mime_type},
                    media_body=media,
                    fields="id, name, webViewLink, webContentLink",
                    supportsAllDrives=True,
                )
                .execute()
            )

        try:
            created = await loop.run_in_executor(None, _create)
        except HttpError as err:
            status = http_status(err)
            if status == 401:
                raise DelegatedCredentialInvalid(
                    "Google Drive authorization is invalid or expired. Reconnect Google Drive.",
                    {"folder_id": folder_id},
                ) from err
            if status == 403:
                raise FolderPermissionDenied(folder_id) from err
            raise StorageError(f"Drive upload failed: {err}", {"folder_id": folder_id, "status": status}) from err

        logger.info("File uploaded to Drive", file_id=created.get("id"), name=file_name, strategy=self.strategy)
        return RemoteAsset(
            file_id=created["id"],
            web_view_link=created.get("webViewLink"),
            web_content_link=created.get("webContentLink"),
            name=created.get("name") or file_name,
            strategy=self.strategy,
        )
