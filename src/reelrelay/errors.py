"""Reportable failure kinds for the relay.

Every error carries a stable ``code``, a human-readable message suitable for
direct display, and a ``details`` dict for structured logging. ``str(err)``
renders as ``"<CODE>: <message>"``, which is what ends up in stored results.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    code = "RELAY_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


# --- Configuration ---


class ConfigurationError(RelayError):
    code = "CONFIGURATION_ERROR"


class TransportSessionMissing(ConfigurationError):
    code = "TELEGRAM_SESSION_NOT_INITIALIZED"

    def __init__(self) -> None:
        super().__init__("Telegram session is not configured. Log in to the chat transport first.")


class ChatIdMissing(ConfigurationError):
    code = "SYNX_CHAT_ID_NOT_CONFIGURED"

    def __init__(self) -> None:
        super().__init__("SYNX_CHAT_ID is not configured on the server.")


class DestinationFolderMissing(ConfigurationError):
    code = "DRIVE_FOLDER_NOT_CONFIGURED"

    def __init__(self, channel_id: str) -> None:
        super().__init__(
            "No destination folder. Set drive_folder_id on the channel or GOOGLE_DRIVE_DEFAULT_PARENT.",
            {"channel_id": channel_id},
        )


class ChannelNotFound(ConfigurationError):
    code = "CHANNEL_NOT_FOUND"

    def __init__(self, user_id: str, channel_id: str) -> None:
        super().__init__(f"Channel {channel_id} not found", {"user_id": user_id, "channel_id": channel_id})


# --- Transport ---


class TransportError(RelayError):
    code = "TELEGRAM_ERROR"


class TransportSessionExpired(TransportError):
    """Terminal: needs an out-of-band re-login, never retried."""

    code = "TELEGRAM_SESSION_EXPIRED_NEED_RELOGIN"

    def __init__(self, reason: str = "") -> None:
        super().__init__("Telegram session expired or was revoked. Log in again.", {"reason": reason})


class TransportTimeout(TransportError):
    code = "TELEGRAM_TIMEOUT"


class ListingTimeout(TransportTimeout):
    code = "TELEGRAM_TIMEOUT"

    def __init__(self, chat_id: str | int, timeout_s: float) -> None:
        super().__init__(
            f"Timed out after {timeout_s:g}s fetching messages. Check the connection and try again.",
            {"chat_id": chat_id, "timeout_s": timeout_s},
        )


class DownloadTimeout(TransportTimeout):
    code = "TELEGRAM_DOWNLOAD_TIMEOUT"

    def __init__(self, message_id: int, timeout_s: float) -> None:
        super().__init__(
            f"Timed out after {timeout_s:g}s downloading the video. Check the connection and try again.",
            {"message_id": message_id, "timeout_s": timeout_s},
        )


class AnchorMessageNotFound(TransportError):
    code = "TELEGRAM_MESSAGE_NOT_FOUND"

    def __init__(self, chat_id: str | int, message_id: int) -> None:
        super().__init__(
            f"Message with ID {message_id} not found in chat.",
            {"chat_id": chat_id, "message_id": message_id},
        )


class NoVideoFound(TransportError):
    code = "NO_VIDEO_FOUND"

    def __init__(self, chat_id: str | int, anchor_message_id: int | None = None) -> None:
        super().__init__(
            "The video is not in the chat yet. Wait for generation to finish and try again.",
            {"chat_id": chat_id, "anchor_message_id": anchor_message_id},
        )


class MediaDownloadError(TransportError):
    code = "TELEGRAM_DOWNLOAD_ERROR"


# --- Staging ---


class StagingError(RelayError):
    code = "STAGING_ERROR"


class EmptyDownload(StagingError):
    code = "TELEGRAM_DOWNLOAD_FAILED"

    def __init__(self, message_id: int | None = None) -> None:
        super().__init__("Downloaded file is empty or corrupted.", {"message_id": message_id})


class FileTooLarge(StagingError):
    code = "FILE_TOO_LARGE"

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"File is too large ({size / (1024 * 1024):.2f} MB). Maximum size: {limit / (1024 * 1024):g} MB.",
            {"size": size, "limit": limit},
        )


# --- Storage ---


class StorageError(RelayError):
    code = "GOOGLE_DRIVE_ERROR"


class FolderNotFound(StorageError):
    code = "GOOGLE_DRIVE_FOLDER_NOT_FOUND"

    def __init__(self, folder_id: str) -> None:
        super().__init__(f"Folder not found (ID: {folder_id}). Check the folder ID.", {"folder_id": folder_id})


class NotAFolder(StorageError):
    code = "GOOGLE_DRIVE_NOT_A_FOLDER"

    def __init__(self, folder_id: str, mime_type: str | None = None) -> None:
        super().__init__(
            f"ID {folder_id} is not a Google Drive folder.",
            {"folder_id": folder_id, "mime_type": mime_type},
        )


class FolderPermissionDenied(StorageError):
    code = "GOOGLE_DRIVE_PERMISSION_DENIED"

    def __init__(self, folder_id: str) -> None:
        super().__init__(
            f"No write access to folder {folder_id}. The uploader needs Editor rights on it.",
            {"folder_id": folder_id},
        )


class DelegatedCredentialInvalid(StorageError):
    code = "GOOGLE_DRIVE_OAUTH_INVALID"


class ServiceCredentialMissing(StorageError):
    code = "GOOGLE_SERVICE_ACCOUNT_NOT_CONFIGURED"

    def __init__(self) -> None:
        super().__init__("GOOGLE_SERVICE_ACCOUNT_FILE is not configured or does not exist.")


class UploadFailed(StorageError):
    code = "GOOGLE_DRIVE_UPLOAD_FAILED"

    def __init__(self, failures: list[tuple[str, Exception]]) -> None:
        summary = ". ".join(f"{name} upload error: {err}" for name, err in failures)
        super().__init__(
            f"Could not upload the file. {summary}.",
            {"strategies": [name for name, _ in failures]},
        )
        self.failures = failures


# --- Unknown ---


class UnexpectedRelayError(RelayError):
    code = "UNKNOWN_ERROR"

    def __init__(self, step: str, cause: BaseException, **context: Any) -> None:
        super().__init__(f"{step} failed: {cause}", {"step": step, **context})
        self.step = step
