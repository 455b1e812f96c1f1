"""Locate the rendered video in the bot chat and stage it locally.

The anchor is the message that carried the prompt. It is a time marker only:
the video arrives later, so the search keeps videos sent after the anchor
and returns the most recent of them.
"""

from __future__ import annotations

import asyncio
from typing import Iterable

from reelrelay.errors import (
    AnchorMessageNotFound,
    DownloadTimeout,
    FileTooLarge,
    ListingTimeout,
    MediaDownloadError,
    NoVideoFound,
    RelayError,
    TransportError,
)
from reelrelay.infrastructure.config import DOWNLOAD_TIMEOUT_S, LIST_TIMEOUT_S, MESSAGE_WINDOW
from reelrelay.infrastructure.logger import logger
from reelrelay.relay.filenames import declared_extension
from reelrelay.staging.store import TempStagingStore
from reelrelay.staging.types import StagedFile
from reelrelay.transport.types import ChatMediaMessage, ChatSession

VIDEO_EXTENSIONS = (".mp4", ".avi", ".mov", ".mkv", ".webm", ".m4v")


def is_video_message(msg: ChatMediaMessage) -> bool:
    if msg.kind == "video":
        return True
    if msg.kind != "document":
        return False
    if msg.has_video_attribute:
        return True
    if msg.mime_type and msg.mime_type.lower().startswith("video/"):
        return True
    return bool(msg.file_name) and msg.file_name.lower().endswith(VIDEO_EXTENSIONS)


def is_after_anchor(msg: ChatMediaMessage, anchor: ChatMediaMessage) -> bool:
    if msg.id == anchor.id:
        return False
    if msg.id > anchor.id:
        return True
    return msg.sent_at is not None and anchor.sent_at is not None and msg.sent_at > anchor.sent_at


def _qualifying(messages: Iterable[ChatMediaMessage]) -> list[ChatMediaMessage]:
    result = []
    for msg in messages:
        try:
            if is_video_message(msg):
                result.append(msg)
        except Exception as err:
            logger.warning("Skipping unreadable message", message_id=getattr(msg, "id", None), error=str(err))
    return result


def select_latest_video(
    messages: Iterable[ChatMediaMessage],
    anchor: ChatMediaMessage | None = None,
) -> ChatMediaMessage | None:
    """Most recent qualifying video, restricted to those after ``anchor`` when given.

    Ordered by send time with the id as tiebreak; if any candidate has no send
    time the whole set is ordered by id alone.
    """
    candidates = _qualifying(messages)
    if anchor is not None:
        candidates = [m for m in candidates if is_after_anchor(m, anchor)]
    if not candidates:
        return None
    if all(m.sent_at is not None for m in candidates):
        return max(candidates, key=lambda m: (m.sent_at, m.id))
    return max(candidates, key=lambda m: m.id)


def declared_file_name(msg: ChatMediaMessage) -> str:
    if msg.file_name:
        return msg.file_name
    if msg.kind == "video":
        return f"video_{msg.id}.mp4"
    return "video.mp4"


class MediaDownloader:
    def __init__(
        self,
        staging: TempStagingStore,
        message_window: int = MESSAGE_WINDOW,
        list_timeout_s: float = LIST_TIMEOUT_S,
        download_timeout_s: float = DOWNLOAD_TIMEOUT_S,
    ) -> None:
        self._staging = staging
        self._message_window = message_window
        self._list_timeout = list_timeout_s
        self._download_timeout = download_timeout_s

    async def _list(self, session: ChatSession, chat_id: str, **kwargs) -> list[ChatMediaMessage]:
        try:
            return await asyncio.wait_for(session.list_messages(chat_id, **kwargs), timeout=self._list_timeout)
        except asyncio.TimeoutError as err:
            raise ListingTimeout(chat_id, self._list_timeout) from err
        except RelayError:
            raise
        except Exception as err:
            raise TransportError(f"Failed to fetch messages: {err}", {"chat_id": chat_id}) from err

    async def locate(
        self,
        session: ChatSession,
        chat_id: str,
        anchor_message_id: int | None = None,
    ) -> ChatMediaMessage:
        anchor = None
        if anchor_message_id is not None:
            found = await self._list(session, chat_id, ids=[anchor_message_id])
            if not found:
                raise AnchorMessageNotFound(chat_id, anchor_message_id)
            anchor = found[0]

        window = await self._list(session, chat_id, limit=self._message_window)
        logger.info("Fetched chat window", chat_id=chat_id, count=len(window), anchor_message_id=anchor_message_id)

        video = select_latest_video(window, anchor)
        if video is None:
            raise NoVideoFound(chat_id, anchor_message_id)
        logger.info("Video message found", message_id=video.id, kind=video.kind, file_name=video.file_name)
        return video

    async def download(self, session: ChatSession, msg: ChatMediaMessage) -> StagedFile:
        limit = self._staging.max_file_size
        if msg.size is not None and msg.size > limit:
            raise FileTooLarge(msg.size, limit)

        try:
            payload = await asyncio.wait_for(session.fetch_media(msg), timeout=self._download_timeout)
        except asyncio.TimeoutError as err:
            raise DownloadTimeout(msg.id, self._download_timeout) from err
        except RelayError:
            raise
        except Exception as err:
            raise MediaDownloadError(f"Failed to download video: {err}", {"message_id": msg.id}) from err

        file_name = declared_file_name(msg)
        path = await self._staging.write_payload(payload or b"", declared_extension(file_name), message_id=msg.id)
        size = path.stat().st_size
        logger.info("Video downloaded", message_id=msg.id, path=str(path), size=size)
        return StagedFile(path=path, size=size, message_id=msg.id, file_name=file_name, mime_type=msg.mime_type)

    async def locate_and_download(
        self,
        session: ChatSession,
        chat_id: str,
        anchor_message_id: int | None = None,
    ) -> StagedFile:
        msg = await self.locate(session, chat_id, anchor_message_id)
        return await self.download(session, msg)
