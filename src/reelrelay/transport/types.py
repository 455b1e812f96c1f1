"""Chat transport seam: message view and session/transport protocols."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Protocol, Sequence

MediaKind = Literal["video", "document", "other"]


@dataclass(frozen=True)
class ChatMediaMessage:
    id: int
    sent_at: datetime | None = None
    kind: MediaKind = "other"
    file_name: str | None = None
    mime_type: str | None = None
    has_video_attribute: bool = False
    size: int | None = None
    raw: Any = field(default=None, repr=False, compare=False)


class ChatSession(Protocol):
    async def list_messages(
        self,
        chat_id: str,
        limit: int | None = None,
        ids: Sequence[int] | None = None,
    ) -> list[ChatMediaMessage]: ...

    async def fetch_media(self, message: ChatMediaMessage) -> bytes: ...

    async def send_text(self, chat_id: str, text: str) -> int: ...

    async def disconnect(self) -> None: ...


class ChatTransport(Protocol):
    async def connect(self, session_string: str) -> ChatSession: ...
