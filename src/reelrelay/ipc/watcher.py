"""IPC watcher: picks up JSON command files dropped into ``data/ipc/tasks``."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable

from watchfiles import awatch

from reelrelay.infrastructure.config import DATA_DIR, IPC_POLL_INTERVAL
from reelrelay.infrastructure.logger import logger
from reelrelay.infrastructure.poll_loop import PollLoop, start_poll_loop
from reelrelay.ipc.dispatcher import IpcCommandDispatcher
from reelrelay.ipc.handlers.relay_handlers import DownloadVideoHandler, SendPromptHandler
from reelrelay.ipc.handlers.task_handlers import (
    CancelScheduleTasksHandler,
    CancelTaskHandler,
    ListTasksHandler,
    ScheduleAutoDownloadHandler,
)
from reelrelay.relay.dispatch import PromptDispatcher
from reelrelay.relay.types import DownloadAndUploadOptions, DownloadAndUploadResult
from reelrelay.scheduling.scheduler import AutoDownloadScheduler


class IpcDeps:
    """Dependencies for IPC handlers, passed as a context object."""

    def __init__(
        self,
        scheduler: AutoDownloadScheduler,
        run_relay: Callable[[DownloadAndUploadOptions], Awaitable[DownloadAndUploadResult]],
        prompt_dispatcher: PromptDispatcher,
        spawn: Callable[[Awaitable[Any], str], asyncio.Task],
        default_delay_minutes: float,
    ) -> None:
        self.scheduler = scheduler
        self.run_relay = run_relay
        self.prompt_dispatcher = prompt_dispatcher
        self.spawn = spawn
        self.default_delay_minutes = default_delay_minutes


# Fallback poll interval: slower since watchfiles handles the fast path
FALLBACK_POLL_INTERVAL = IPC_POLL_INTERVAL * 10


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".json.tmp")
    temp_path.write_text(json.dumps(payload, indent=2, default=str))
    temp_path.replace(path)


class IpcWatcher:
    """Watches the command inbox and writes responses for requests that carry a ``requestId``."""

    def __init__(self, ipc_dir: Path = DATA_DIR / "ipc") -> None:
        self._dispatcher = IpcCommandDispatcher([
            ScheduleAutoDownloadHandler(),
            CancelTaskHandler(),
            CancelScheduleTasksHandler(),
            ListTasksHandler(),
            DownloadVideoHandler(),
            SendPromptHandler(),
        ])
        self._ipc_dir = ipc_dir
        self._processing = False
        self._running = False
        self._watch_task: asyncio.Task | None = None
        self._poll: PollLoop | None = None

    @property
    def tasks_dir(self) -> Path:
        return self._ipc_dir / "tasks"

    @property
    def responses_dir(self) -> Path:
        return self._ipc_dir / "responses"

    @property
    def errors_dir(self) -> Path:
        return self._ipc_dir / "errors"

    def start(self, deps: IpcDeps) -> None:
        if self._running:
            logger.debug("IPC watcher already running, skipping duplicate start")
            return
        self._running = True
        self.tasks_dir.mkdir(parents=True, exist_ok=True)

        self._watch_task = asyncio.create_task(self._watch_loop())
        self._poll = start_poll_loop("ipc", FALLBACK_POLL_INTERVAL, lambda: self.process_pending(deps))
        logger.info("IPC watcher started (watchfiles + fallback poll)", path=str(self.tasks_dir))

    async def stop(self) -> None:
        self._running = False
        watch_task, self._watch_task = self._watch_task, None
        if watch_task is not None:
            watch_task.cancel()
            await asyncio.gather(watch_task, return_exceptions=True)
        poll, self._poll = self._poll, None
        if poll is not None:
            await poll.stop()

    async def dispatch_command(self, data: dict[str, Any], deps: IpcDeps) -> dict[str, Any] | None:
        """Dispatch a command directly (used by tests)."""
        return await self._dispatcher.dispatch(data, deps)

    async def _watch_loop(self) -> None:
        try:
            async for _changes in awatch(str(self.tasks_dir)):
                if not self._running:
                    break
                if self._poll is not None:
                    self._poll.poke()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("watchfiles error")

    async def process_pending(self, deps: IpcDeps) -> None:
        if self._processing:
            return
        self._processing = True
        try:
            if not self.tasks_dir.exists():
                return
            for file_path in sorted(f for f in self.tasks_dir.iterdir() if f.suffix == ".json"):
                await self._process_file(file_path, deps)
        finally:
            self._processing = False

    def _replier(self, request_id: str) -> Callable[[dict[str, Any]], None]:
        def reply(response: dict[str, Any]) -> None:
            try:
                write_json_atomic(self.responses_dir / f"{request_id}.json", {"requestId": request_id, **response})
            except OSError as err:
                logger.error("Failed to write IPC response", request_id=request_id, error=str(err))

        return reply

    async def _process_file(self, file_path: Path, deps: IpcDeps) -> None:
        request_id: str | None = None
        try:
            data = json.loads(file_path.read_text())
            if not isinstance(data, dict):
                raise ValueError("IPC command must be a JSON object")
            request_id = data.get("requestId")
            reply = self._replier(request_id) if request_id else None
            response = await self._dispatcher.dispatch(data, deps, reply)
            if reply is not None and response is not None:
                reply(response)
            file_path.unlink()
        except Exception as err:
            logger.exception("Error processing IPC command", file=file_path.name)
            if request_id:
                write_json_atomic(
                    self.responses_dir / f"{request_id}.json",
                    {"requestId": request_id, "ok": False, "error": str(err)},
                )
            self.errors_dir.mkdir(parents=True, exist_ok=True)
            try:
                file_path.rename(self.errors_dir / file_path.name)
            except OSError as move_err:
                logger.warning("Failed to move IPC command to errors", file=file_path.name, error=str(move_err))
