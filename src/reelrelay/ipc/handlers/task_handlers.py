"""Auto-download task IPC handlers: schedule, cancel, cancel for schedule, list."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from reelrelay.infrastructure.logger import logger
from reelrelay.ipc.dispatcher import HandlerContext, IpcCommandHandler, IpcHandlerError


def optional_int(data: dict[str, Any], key: str, command: str) -> int | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise IpcHandlerError(f"Invalid {key}", {"command": command, key: value})


def optional_float(data: dict[str, Any], key: str, command: str) -> float | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise IpcHandlerError(f"Invalid {key}", {"command": command, key: value})


# --- ScheduleAutoDownloadHandler ---


@dataclass
class ScheduleAutoDownloadPayload:
    channel_id: str
    schedule_id: str
    user_id: str
    telegram_message_id: int | None
    delay_minutes: float | None
    chat_id: str | None


class ScheduleAutoDownloadHandler(IpcCommandHandler):
    command = "schedule_auto_download"

    async def validate(self, data: dict[str, Any]) -> ScheduleAutoDownloadPayload:
        if not data.get("channelId") or not data.get("scheduleId") or not data.get("userId"):
            raise IpcHandlerError("Missing required fields", {"command": self.command})
        return ScheduleAutoDownloadPayload(
            channel_id=str(data["channelId"]),
            schedule_id=str(data["scheduleId"]),
            user_id=str(data["userId"]),
            telegram_message_id=optional_int(data, "telegramMessageId", self.command),
            delay_minutes=optional_float(data, "delayMinutes", self.command),
            chat_id=data.get("chatId"),
        )

    async def execute(self, payload: ScheduleAutoDownloadPayload, context: HandlerContext) -> dict[str, Any]:
        delay = context.deps.default_delay_minutes if payload.delay_minutes is None else payload.delay_minutes
        try:
            task_id = context.deps.scheduler.schedule(
                payload.channel_id,
                payload.schedule_id,
                payload.user_id,
                payload.telegram_message_id,
                delay,
                chat_id=payload.chat_id,
            )
        except (ValueError, RuntimeError) as err:
            raise IpcHandlerError(str(err), {"channelId": payload.channel_id, "scheduleId": payload.schedule_id})
        logger.info("Auto-download scheduled via IPC", task_id=task_id, channel_id=payload.channel_id)
        return {"taskId": task_id}


# --- CancelTaskHandler ---


class CancelTaskHandler(IpcCommandHandler):
    command = "cancel_task"

    async def validate(self, data: dict[str, Any]) -> str:
        if not data.get("taskId"):
            raise IpcHandlerError("Missing taskId", {"command": self.command})
        return data["taskId"]

    async def execute(self, task_id: str, context: HandlerContext) -> dict[str, Any]:
        cancelled = context.deps.scheduler.cancel(task_id)
        logger.info("Task cancel via IPC", task_id=task_id, cancelled=cancelled)
        return {"cancelled": cancelled}


# --- CancelScheduleTasksHandler ---


class CancelScheduleTasksHandler(IpcCommandHandler):
    command = "cancel_schedule_tasks"

    async def validate(self, data: dict[str, Any]) -> tuple[str, str]:
        if not data.get("channelId") or not data.get("scheduleId"):
            raise IpcHandlerError("Missing channelId or scheduleId", {"command": self.command})
        return str(data["channelId"]), str(data["scheduleId"])

    async def execute(self, pair: tuple[str, str], context: HandlerContext) -> dict[str, Any]:
        channel_id, schedule_id = pair
        count = context.deps.scheduler.cancel_all(channel_id, schedule_id)
        return {"cancelled": count}


# --- ListTasksHandler ---


class ListTasksHandler(IpcCommandHandler):
    command = "list_tasks"

    async def validate(self, data: dict[str, Any]) -> None:
        return None

    async def execute(self, payload: None, context: HandlerContext) -> dict[str, Any]:
        return {"tasks": [t.model_dump() for t in context.deps.scheduler.list()]}
