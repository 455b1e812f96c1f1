"""Delayed auto-download tasks, one live task per (channel, schedule) pair.

Each task is an asyncio task that sleeps for the delay and then runs the
relay once. A task leaves the live table the moment it fires; from then on it
can no longer be cancelled, only awaited with ``wait_for``.
"""

from __future__ import annotations

import asyncio
import random
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from reelrelay.infrastructure.logger import logger
from reelrelay.relay.types import DownloadAndUploadOptions, DownloadAndUploadResult
from reelrelay.scheduling.repository import TaskRunRepository
from reelrelay.scheduling.types import ScheduledTask, TaskRunLog, TaskSummary

RunFn = Callable[[DownloadAndUploadOptions], Awaitable[DownloadAndUploadResult]]

# Results kept for wait_for() callers that arrive after the run finished
MAX_KEPT_RESULTS = 100


def new_task_id(channel_id: str, schedule_id: str, now: datetime) -> str:
    rand = "".join(random.choices(string.ascii_lowercase + string.digits, k=4))
    return f"{channel_id}_{schedule_id}_{int(now.timestamp() * 1000)}_{rand}"


class AutoDownloadScheduler:
    def __init__(
        self,
        run: RunFn,
        run_repo: TaskRunRepository | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._run = run
        self._run_repo = run_repo
        self._on_change = on_change
        self._live: dict[str, ScheduledTask] = {}
        self._handles: dict[str, asyncio.Task] = {}
        self._results: dict[str, DownloadAndUploadResult] = {}
        self._fired: set[str] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        """Runs that have fired and not finished yet."""
        return len(self._fired)

    def start(self) -> None:
        self._running = True
        logger.info("Auto-download scheduler started")

    async def stop(self) -> None:
        """Disarm every live timer, then wait for runs already in flight to finish."""
        self._running = False
        disarmed = len(self._live)
        in_flight = self.in_flight
        for task in self._live.values():
            if task.handle is not None:
                task.handle.cancel()
        self._live.clear()

        pending = [h for h in self._handles.values() if not h.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._notify()
        logger.info("Auto-download scheduler stopped", disarmed=disarmed, in_flight=in_flight)

    def schedule(
        self,
        channel_id: str,
        schedule_id: str,
        user_id: str,
        anchor_message_id: int | None,
        delay_minutes: float,
        chat_id: str | None = None,
    ) -> str:
        if not self._running:
            raise RuntimeError("Scheduler is not running; call start() first")
        if not channel_id or not schedule_id or not user_id:
            raise ValueError("channel_id, schedule_id and user_id are required")
        if delay_minutes is None or delay_minutes < 0:
            raise ValueError(f"Invalid delay_minutes: {delay_minutes}")

        superseded = self._cancel_pair(channel_id, schedule_id)
        if superseded:
            logger.info("Superseded pending auto-download", channel_id=channel_id, schedule_id=schedule_id, count=superseded)

        now = datetime.now(timezone.utc)
        task = ScheduledTask(
            id=new_task_id(channel_id, schedule_id, now),
            channel_id=channel_id,
            schedule_id=schedule_id,
            user_id=user_id,
            run_at=now + timedelta(minutes=delay_minutes),
            created_at=now,
            telegram_message_id=anchor_message_id,
            chat_id=chat_id,
        )
        handle = asyncio.create_task(self._fire(task, delay_minutes * 60), name=f"auto-download:{task.id}")
        task.handle = handle
        self._live[task.id] = task
        self._handles[task.id] = handle
        handle.add_done_callback(lambda h, task_id=task.id: self._on_done(task_id, h))

        logger.info(
            "Auto-download scheduled",
            task_id=task.id,
            channel_id=channel_id,
            schedule_id=schedule_id,
            telegram_message_id=anchor_message_id,
            run_at=task.run_at.isoformat(),
        )
        self._notify()
        return task.id

    def cancel(self, task_id: str) -> bool:
        task = self._live.pop(task_id, None)
        if task is None:
            return False
        if task.handle is not None:
            task.handle.cancel()
        logger.info("Auto-download cancelled", task_id=task_id)
        self._notify()
        return True

    def cancel_all(self, channel_id: str, schedule_id: str) -> int:
        count = self._cancel_pair(channel_id, schedule_id)
        if count:
            logger.info("Cancelled auto-downloads for schedule", channel_id=channel_id, schedule_id=schedule_id, count=count)
            self._notify()
        return count

    def list(self) -> list[TaskSummary]:
        return [t.summary() for t in sorted(self._live.values(), key=lambda t: t.run_at)]

    async def wait_for(self, task_id: str) -> DownloadAndUploadResult | None:
        """Result of a scheduled run once it completes; None if cancelled or unknown."""
        handle = self._handles.get(task_id)
        if handle is None:
            return self._results.get(task_id)
        await asyncio.wait({handle})
        if handle.cancelled():
            return None
        return handle.result()

    def _cancel_pair(self, channel_id: str, schedule_id: str) -> int:
        matching = [
            t for t in self._live.values() if t.channel_id == channel_id and t.schedule_id == schedule_id
        ]
        for task in matching:
            del self._live[task.id]
            if task.handle is not None:
                task.handle.cancel()
        return len(matching)

    def _on_done(self, task_id: str, handle: asyncio.Task) -> None:
        self._handles.pop(task_id, None)
        self._fired.discard(task_id)
        if handle.cancelled() or handle.exception() is not None:
            return
        result = handle.result()
        if result is not None:
            self._results[task_id] = result
            while len(self._results) > MAX_KEPT_RESULTS:
                self._results.pop(next(iter(self._results)))

    async def _fire(self, task: ScheduledTask, delay_s: float) -> DownloadAndUploadResult | None:
        await asyncio.sleep(delay_s)
        if self._live.pop(task.id, None) is None:
            return None
        self._fired.add(task.id)
        self._notify()

        run_at = datetime.now(timezone.utc)
        started = time.monotonic()
        logger.info("Auto-download firing", task_id=task.id, channel_id=task.channel_id, schedule_id=task.schedule_id)
        options = DownloadAndUploadOptions(
            channel_id=task.channel_id,
            user_id=task.user_id,
            telegram_message_id=task.telegram_message_id,
            schedule_id=task.schedule_id,
            chat_id=task.chat_id,
        )
        try:
            result = await self._run(options)
        except Exception as err:
            logger.exception("Auto-download run raised", task_id=task.id)
            result = DownloadAndUploadResult(success=False, error=str(err), error_code="UNKNOWN_ERROR")

        duration_ms = int((time.monotonic() - started) * 1000)
        if result.success:
            logger.info("Auto-download completed", task_id=task.id, drive_file_id=result.drive_file_id, duration_ms=duration_ms)
        else:
            logger.warning("Auto-download failed", task_id=task.id, error=result.error, duration_ms=duration_ms)
        self._log_run(task, run_at, duration_ms, result)
        return result

    def _log_run(self, task: ScheduledTask, run_at: datetime, duration_ms: int, result: DownloadAndUploadResult) -> None:
        if self._run_repo is None:
            return
        try:
            self._run_repo.log_task_run(
                TaskRunLog(
                    task_id=task.id,
                    channel_id=task.channel_id,
                    schedule_id=task.schedule_id,
                    run_at=run_at.isoformat(),
                    duration_ms=duration_ms,
                    status="success" if result.success else "error",
                    drive_file_id=result.drive_file_id,
                    error=result.error,
                )
            )
        except Exception:
            logger.exception("Failed to log task run", task_id=task.id)

    def _notify(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("Task change hook failed")
