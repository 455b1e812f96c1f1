"""Scheduling domain types."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel


@dataclass
class ScheduledTask:
    id: str
    channel_id: str
    schedule_id: str
    user_id: str
    run_at: datetime
    created_at: datetime
    telegram_message_id: int | None = None
    chat_id: str | None = None
    handle: asyncio.Task | None = field(default=None, repr=False, compare=False)

    def summary(self) -> TaskSummary:
        return TaskSummary(
            id=self.id,
            channel_id=self.channel_id,
            schedule_id=self.schedule_id,
            user_id=self.user_id,
            run_at=self.run_at.isoformat(),
            telegram_message_id=self.telegram_message_id,
        )


class TaskSummary(BaseModel):
    id: str
    channel_id: str
    schedule_id: str
    user_id: str
    run_at: str
    telegram_message_id: int | None = None


class TaskRunLog(BaseModel):
    task_id: str
    channel_id: str
    schedule_id: str
    run_at: str
    duration_ms: int
    status: Literal["success", "error"]
    drive_file_id: str | None = None
    error: str | None = None
