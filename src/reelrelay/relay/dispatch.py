"""Send a prompt to the rendering bot and arm the follow-up download."""

from __future__ import annotations

from typing import TYPE_CHECKING

from reelrelay.errors import ChatIdMissing, TransportSessionMissing
from reelrelay.infrastructure.config import RelaySettings
from reelrelay.infrastructure.logger import logger
from reelrelay.relay.types import SentPrompt
from reelrelay.transport.types import ChatTransport

if TYPE_CHECKING:
    from reelrelay.scheduling.scheduler import AutoDownloadScheduler


class PromptDispatcher:
    def __init__(
        self,
        settings: RelaySettings,
        transport: ChatTransport,
        scheduler: AutoDownloadScheduler | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._scheduler = scheduler

    async def send_prompt(self, prompt: str) -> SentPrompt:
        if not prompt or not prompt.strip():
            raise ValueError("Prompt must not be empty")
        if not self._settings.chat_id:
            raise ChatIdMissing()
        if not self._settings.session_string:
            raise TransportSessionMissing()

        chat_id = self._settings.chat_id
        session = await self._transport.connect(self._settings.session_string)
        try:
            message_id = await session.send_text(chat_id, prompt)
        finally:
            try:
                await session.disconnect()
            except Exception as err:
                logger.warning("Error disconnecting chat session", error=str(err))

        logger.info("Prompt sent", chat_id=chat_id, message_id=message_id, length=len(prompt))
        return SentPrompt(message_id=message_id, chat_id=chat_id)

    async def send_and_schedule(
        self,
        channel_id: str,
        schedule_id: str,
        user_id: str,
        prompt: str,
        delay_minutes: float | None = None,
    ) -> tuple[SentPrompt, str]:
        """Send ``prompt`` and schedule the download anchored at the sent message."""
        if self._scheduler is None:
            raise RuntimeError("PromptDispatcher has no scheduler")
        sent = await self.send_prompt(prompt)
        delay = self._settings.default_delay_minutes if delay_minutes is None else delay_minutes
        task_id = self._scheduler.schedule(
            channel_id, schedule_id, user_id, sent.message_id, delay, chat_id=sent.chat_id
        )
        return sent, task_id
