"""Download-then-upload relay run.

A run walks PRECHECK -> DOWNLOADING -> UPLOADING -> CLEANUP and always ends
with a ``DownloadAndUploadResult``; nothing raises past ``run``. The staged
file is removed on every path, and the channel record is only touched after a
successful upload.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone

from reelrelay.channels.repository import ChannelRepository
from reelrelay.channels.types import Channel, GeneratedVideoRecord
from reelrelay.errors import (
    ChannelNotFound,
    ChatIdMissing,
    DestinationFolderMissing,
    RelayError,
    TransportSessionMissing,
    UnexpectedRelayError,
)
from reelrelay.infrastructure.config import RelaySettings
from reelrelay.infrastructure.logger import logger
from reelrelay.relay.filenames import build_drive_file_name
from reelrelay.relay.locator import MediaDownloader
from reelrelay.relay.types import DownloadAndUploadOptions, DownloadAndUploadResult
from reelrelay.staging.store import TempStagingStore
from reelrelay.staging.types import StagedFile
from reelrelay.storage.strategies import UploadStrategyFactory, upload_with_fallback
from reelrelay.storage.types import RemoteAsset
from reelrelay.transport.types import ChatSession, ChatTransport

DEFAULT_UPLOAD_MIME = "video/mp4"


@dataclass
class _RunState:
    step: str = "precheck"
    staged: StagedFile | None = None


@dataclass
class _Target:
    session_string: str
    chat_id: str
    channel: Channel
    folder_id: str


def upload_mime_type(staged: StagedFile) -> str:
    if staged.mime_type and staged.mime_type.lower().startswith("video/"):
        return staged.mime_type
    return DEFAULT_UPLOAD_MIME


class RelayOrchestrator:
    def __init__(
        self,
        settings: RelaySettings,
        transport: ChatTransport,
        downloader: MediaDownloader,
        staging: TempStagingStore,
        strategy_factory: UploadStrategyFactory,
        channel_repo: ChannelRepository,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._downloader = downloader
        self._staging = staging
        self._strategy_factory = strategy_factory
        self._channel_repo = channel_repo

    async def run(self, options: DownloadAndUploadOptions) -> DownloadAndUploadResult:
        log = logger.bind(channel_id=options.channel_id, user_id=options.user_id, schedule_id=options.schedule_id)
        log.info(
            "Relay run started",
            telegram_message_id=options.telegram_message_id,
            video_title=options.video_title or "not provided",
        )
        started = time.monotonic()
        state = _RunState()

        try:
            asset = await self._execute(options, state)
        except RelayError as err:
            log.warning("Relay run failed", step=state.step, code=err.code, error=err.message, **err.details)
            return DownloadAndUploadResult.failed(err)
        except Exception as err:
            wrapped = UnexpectedRelayError(
                state.step, err, channel_id=options.channel_id, user_id=options.user_id
            )
            log.exception("Unexpected relay failure", step=state.step)
            return DownloadAndUploadResult.failed(wrapped)
        finally:
            if state.staged is not None:
                self._staging.remove(state.staged.path)

        self._persist(options, asset)
        log.info(
            "Relay run finished",
            drive_file_id=asset.file_id,
            strategy=asset.strategy,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return DownloadAndUploadResult.ok(asset)

    def _precheck(self, options: DownloadAndUploadOptions) -> _Target:
        if not self._settings.session_string:
            raise TransportSessionMissing()
        chat_id = options.chat_id or self._settings.chat_id
        if not chat_id:
            raise ChatIdMissing()
        channel = self._channel_repo.get_channel(options.user_id, options.channel_id)
        if channel is None:
            raise ChannelNotFound(options.user_id, options.channel_id)
        folder_id = (channel.drive_folder_id or "").strip() or self._settings.default_folder_id
        if not folder_id:
            raise DestinationFolderMissing(options.channel_id)
        logger.debug(
            "Destination folder resolved",
            channel_folder=channel.drive_folder_id or "not set",
            default_folder=self._settings.default_folder_id or "not set",
            folder_id=folder_id,
        )
        return _Target(self._settings.session_string, chat_id, channel, folder_id)

    async def _execute(self, options: DownloadAndUploadOptions, state: _RunState) -> RemoteAsset:
        target = self._precheck(options)

        state.step = "connect"
        session = await self._transport.connect(target.session_string)
        try:
            state.step = "download"
            state.staged = await self._downloader.locate_and_download(
                session, target.chat_id, options.telegram_message_id
            )
        finally:
            await self._disconnect(session)

        state.step = "upload"
        file_name = build_drive_file_name(options.video_title, target.channel.name, target.channel.id)
        strategies = self._strategy_factory.for_user(options.user_id)
        return await upload_with_fallback(
            strategies,
            state.staged.path,
            file_name,
            upload_mime_type(state.staged),
            target.folder_id,
        )

    async def _disconnect(self, session: ChatSession) -> None:
        try:
            await session.disconnect()
        except Exception as err:
            logger.warning("Error disconnecting chat session", error=str(err))

    def _persist(self, options: DownloadAndUploadOptions, asset: RemoteAsset) -> None:
        record = GeneratedVideoRecord(
            drive_file_id=asset.file_id,
            drive_web_view_link=asset.web_view_link,
            drive_web_content_link=asset.web_content_link,
            file_name=asset.name,
            created_at=datetime.now(timezone.utc),
            source="auto-scheduled" if options.schedule_id else "manual",
            telegram_message_id=options.telegram_message_id,
            schedule_id=options.schedule_id,
            strategy=asset.strategy,
        )
        try:
            self._channel_repo.append_result_record(options.user_id, options.channel_id, record)
        except Exception:
            logger.exception("Failed to save video record", channel_id=options.channel_id, drive_file_id=asset.file_id)
        try:
            self._channel_repo.update_last_asset(options.user_id, options.channel_id, asset)
        except Exception:
            logger.exception("Failed to update channel last video", channel_id=options.channel_id)
