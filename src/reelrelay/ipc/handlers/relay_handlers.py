"""Relay IPC handlers: manual download and prompt dispatch."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from reelrelay.errors import RelayError
from reelrelay.infrastructure.logger import logger
from reelrelay.ipc.dispatcher import DEFERRED, HandlerContext, IpcCommandHandler, IpcHandlerError, Reply
from reelrelay.ipc.handlers.task_handlers import optional_float, optional_int
from reelrelay.relay.types import DownloadAndUploadOptions


# --- DownloadVideoHandler ---


@dataclass
class DownloadVideoPayload:
    options: DownloadAndUploadOptions
    wait: bool


class DownloadVideoHandler(IpcCommandHandler):
    command = "download_video"

    async def validate(self, data: dict[str, Any]) -> DownloadVideoPayload:
        if not data.get("channelId") or not data.get("userId"):
            raise IpcHandlerError("Missing channelId or userId", {"command": self.command})
        return DownloadVideoPayload(
            options=DownloadAndUploadOptions(
                channel_id=str(data["channelId"]),
                user_id=str(data["userId"]),
                telegram_message_id=optional_int(data, "telegramMessageId", self.command),
                video_title=data.get("videoTitle") or None,
            ),
            wait=bool(data.get("wait", False)),
        )

    async def execute(self, payload: DownloadVideoPayload, context: HandlerContext) -> Any:
        # The inbox never blocks on a relay run
        task = context.deps.spawn(context.deps.run_relay(payload.options), f"download:{payload.options.channel_id}")
        logger.info("Manual download started via IPC", channel_id=payload.options.channel_id, wait=payload.wait)
        if payload.wait and context.reply is not None:
            task.add_done_callback(lambda t, reply=context.reply: _reply_with_result(t, reply))
            return DEFERRED
        return {"started": True}


def _reply_with_result(task: asyncio.Task, reply: Reply) -> None:
    if task.cancelled():
        reply({"ok": False, "error": "Download was cancelled"})
    elif task.exception() is not None:
        reply({"ok": False, "error": str(task.exception())})
    else:
        reply({"ok": True, "result": task.result().model_dump()})


# --- SendPromptHandler ---


@dataclass
class SendPromptPayload:
    prompt: str
    channel_id: str | None
    schedule_id: str | None
    user_id: str | None
    delay_minutes: float | None


class SendPromptHandler(IpcCommandHandler):
    command = "send_prompt"

    async def validate(self, data: dict[str, Any]) -> SendPromptPayload:
        prompt = data.get("prompt")
        if not prompt or not str(prompt).strip():
            raise IpcHandlerError("Missing prompt", {"command": self.command})
        schedule_fields = [data.get("channelId"), data.get("scheduleId"), data.get("userId")]
        if any(schedule_fields) and not all(schedule_fields):
            raise IpcHandlerError("channelId, scheduleId and userId go together", {"command": self.command})
        return SendPromptPayload(
            prompt=str(prompt),
            channel_id=data.get("channelId"),
            schedule_id=data.get("scheduleId"),
            user_id=data.get("userId"),
            delay_minutes=optional_float(data, "delayMinutes", self.command),
        )

    async def execute(self, payload: SendPromptPayload, context: HandlerContext) -> dict[str, Any]:
        dispatcher = context.deps.prompt_dispatcher
        try:
            if payload.channel_id:
                sent, task_id = await dispatcher.send_and_schedule(
                    payload.channel_id,
                    payload.schedule_id,
                    payload.user_id,
                    payload.prompt,
                    payload.delay_minutes,
                )
                return {"messageId": sent.message_id, "chatId": sent.chat_id, "taskId": task_id}
            sent = await dispatcher.send_prompt(payload.prompt)
        except RelayError as err:
            raise IpcHandlerError(str(err), {"code": err.code})
        except (ValueError, RuntimeError) as err:
            raise IpcHandlerError(str(err), {"command": self.command})
        return {"messageId": sent.message_id, "chatId": sent.chat_id}
