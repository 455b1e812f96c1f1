"""Relay request/result types."""

from __future__ import annotations

from pydantic import BaseModel

from reelrelay.errors import RelayError
from reelrelay.storage.types import RemoteAsset, StrategyName


class DownloadAndUploadOptions(BaseModel):
    channel_id: str
    user_id: str
    telegram_message_id: int | None = None  # anchor: the prompt message, never the video
    video_title: str | None = None
    schedule_id: str | None = None  # set for auto-scheduled runs
    chat_id: str | None = None  # overrides SYNX_CHAT_ID


class DownloadAndUploadResult(BaseModel):
    success: bool
    drive_file_id: str | None = None
    drive_web_view_link: str | None = None
    drive_web_content_link: str | None = None
    file_name: str | None = None
    strategy: StrategyName | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, asset: RemoteAsset) -> DownloadAndUploadResult:
        return cls(
            success=True,
            drive_file_id=asset.file_id,
            drive_web_view_link=asset.web_view_link,
            drive_web_content_link=asset.web_content_link,
            file_name=asset.name,
            strategy=asset.strategy,
        )

    @classmethod
    def failed(cls, err: RelayError) -> DownloadAndUploadResult:
        return cls(success=False, error=str(err), error_code=err.code)


class SentPrompt(BaseModel):
    message_id: int
    chat_id: str
