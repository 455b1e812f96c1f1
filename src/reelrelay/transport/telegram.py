"""Telethon-backed chat transport (user account session)."""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from telethon import TelegramClient
from telethon.errors import AuthKeyDuplicatedError, RPCError, UnauthorizedError
from telethon.sessions import StringSession
from telethon.tl.types import DocumentAttributeFilename, DocumentAttributeVideo

from reelrelay.errors import MediaDownloadError, TransportError, TransportSessionExpired, TransportTimeout
from reelrelay.infrastructure.config import CONNECT_TIMEOUT_S
from reelrelay.infrastructure.logger import logger
from reelrelay.transport.types import ChatMediaMessage, MediaKind


def is_session_revoked(err: BaseException) -> bool:
    """Auth-key and account errors that need an out-of-band re-login."""
    return isinstance(err, (UnauthorizedError, AuthKeyDuplicatedError))


def resolve_peer(chat_id: str | int) -> str | int:
    """Numeric chat ids go to Telethon as ints; usernames stay strings."""
    if isinstance(chat_id, int):
        return chat_id
    value = chat_id.strip()
    if value.lstrip("-").isdigit():
        return int(value)
    return value


def to_media_message(msg: Any) -> ChatMediaMessage:
    document = getattr(msg, "document", None)
    kind: MediaKind = "other"
    if getattr(msg, "video", None) is not None:
        kind = "video"
    elif document is not None:
        kind = "document"

    file_name = None
    has_video_attribute = False
    mime_type = None
    size = None
    if document is not None:
        mime_type = getattr(document, "mime_type", None)
        size = getattr(document, "size", None)
        for attr in getattr(document, "attributes", None) or []:
            if isinstance(attr, DocumentAttributeFilename):
                file_name = attr.file_name
            elif isinstance(attr, DocumentAttributeVideo):
                has_video_attribute = True

    return ChatMediaMessage(
        id=msg.id,
        sent_at=getattr(msg, "date", None),
        kind=kind,
        file_name=file_name,
        mime_type=mime_type,
        has_video_attribute=has_video_attribute,
        size=size,
        raw=msg,
    )


class TelethonSession:
    """A connected, authorized client. Always ``disconnect`` when done."""

    def __init__(self, client: TelegramClient) -> None:
        self._client = client

    async def list_messages(
        self,
        chat_id: str,
        limit: int | None = None,
        ids: Sequence[int] | None = None,
    ) -> list[ChatMediaMessage]:
        peer = resolve_peer(chat_id)
        try:
            if ids is not None:
                raw = await self._client.get_messages(peer, ids=list(ids))
            else:
                raw = await self._client.get_messages(peer, limit=limit)
        except RPCError as err:
            if is_session_revoked(err):
                raise TransportSessionExpired(type(err).__name__) from err
            raise TransportError(f"Failed to list messages: {err}", {"chat_id": chat_id}) from err
        # Missing ids come back as None
        return [to_media_message(m) for m in raw if m is not None]

    async def fetch_media(self, message: ChatMediaMessage) -> bytes:
        try:
            payload = await self._client.download_media(message.raw, file=bytes)
        except RPCError as err:
            if is_session_revoked(err):
                raise TransportSessionExpired(type(err).__name__) from err
            raise MediaDownloadError(f"Failed to download media: {err}", {"message_id": message.id}) from err
        return payload or b""

    async def send_text(self, chat_id: str, text: str) -> int:
        try:
            sent = await self._client.send_message(resolve_peer(chat_id), text)
        except RPCError as err:
            if is_session_revoked(err):
                raise TransportSessionExpired(type(err).__name__) from err
            raise TransportError(f"Failed to send message: {err}", {"chat_id": chat_id}) from err
        return sent.id

    async def disconnect(self) -> None:
        await self._client.disconnect()


async def _quiet_disconnect(client: TelegramClient) -> None:
    try:
        await client.disconnect()
    except Exception as err:
        logger.warning("Error disconnecting Telegram client", error=str(err))


class TelethonTransport:
    def __init__(self, api_id: int, api_hash: str, connect_timeout: float = CONNECT_TIMEOUT_S) -> None:
        self._api_id = api_id
        self._api_hash = api_hash
        self._connect_timeout = connect_timeout

    async def connect(self, session_string: str) -> TelethonSession:
        client = TelegramClient(StringSession(session_string), self._api_id, self._api_hash)

        async def _open() -> bool:
            await client.connect()
            return await client.is_user_authorized()

        try:
            authorized = await asyncio.wait_for(_open(), timeout=self._connect_timeout)
        except asyncio.TimeoutError as err:
            await _quiet_disconnect(client)
            raise TransportTimeout(
                f"Timed out after {self._connect_timeout:g}s connecting to Telegram.",
                {"timeout_s": self._connect_timeout},
            ) from err
        except RPCError as err:
            await _quiet_disconnect(client)
            if is_session_revoked(err):
                raise TransportSessionExpired(type(err).__name__) from err
            raise TransportError(f"Failed to connect to Telegram: {err}") from err
        except OSError as err:
            await _quiet_disconnect(client)
            raise TransportError(f"Failed to connect to Telegram: {err}") from err

        if not authorized:
            await _quiet_disconnect(client)
            raise TransportSessionExpired("not authorized")

        logger.debug("Telegram client connected")
        return TelethonSession(client)
