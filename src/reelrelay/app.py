"""RelayApp: composes services, wires subsystems."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable

from reelrelay.infrastructure.config import DATA_DIR, RelaySettings
from reelrelay.infrastructure.database import AppDatabase
from reelrelay.infrastructure.logger import logger
from reelrelay.ipc.watcher import IpcDeps, IpcWatcher
from reelrelay.relay.dispatch import PromptDispatcher
from reelrelay.relay.locator import MediaDownloader
from reelrelay.relay.orchestrator import RelayOrchestrator
from reelrelay.relay.types import DownloadAndUploadOptions, DownloadAndUploadResult, SentPrompt
from reelrelay.scheduling.scheduler import AutoDownloadScheduler
from reelrelay.scheduling.snapshot_writer import SnapshotWriter
from reelrelay.scheduling.types import TaskSummary
from reelrelay.staging.store import TempStagingStore
from reelrelay.storage.strategies import UploadStrategyFactory
from reelrelay.transport.telegram import TelethonTransport
from reelrelay.transport.types import ChatTransport


class RelayApp:
    """Composes all services and manages the application lifecycle.

    ``transport`` and ``strategy_factory`` can be injected; by default they
    are built from ``settings`` (Telethon and Google Drive).
    """

    def __init__(
        self,
        settings: RelaySettings,
        db: AppDatabase,
        transport: ChatTransport | None = None,
        strategy_factory: UploadStrategyFactory | None = None,
        snapshot_writer: SnapshotWriter | None = None,
        ipc_watcher: IpcWatcher | None = None,
    ) -> None:
        self.settings = settings
        self._db = db
        self._transport = transport or TelethonTransport(
            settings.telegram_api_id, settings.telegram_api_hash, settings.connect_timeout_s
        )
        self._staging = TempStagingStore(settings.tmp_dir, settings.max_file_size)
        self._strategy_factory = strategy_factory or UploadStrategyFactory(db.credential_repo, settings)
        self._snapshot_writer = snapshot_writer or SnapshotWriter(DATA_DIR / "ipc")
        self._ipc_watcher = ipc_watcher
        self._background: set[asyncio.Task] = set()

        self.orchestrator = RelayOrchestrator(
            settings,
            self._transport,
            MediaDownloader(
                self._staging,
                message_window=settings.message_window,
                list_timeout_s=settings.list_timeout_s,
                download_timeout_s=settings.download_timeout_s,
            ),
            self._staging,
            self._strategy_factory,
            db.channel_repo,
        )
        self.scheduler = AutoDownloadScheduler(
            self.orchestrator.run,
            run_repo=db.run_repo,
            on_change=self._refresh_snapshot,
        )
        self.prompts = PromptDispatcher(settings, self._transport, self.scheduler)

    async def start(self) -> None:
        logger.info("Starting reelrelay...")
        self._staging.ensure_dir()
        self.scheduler.start()
        self._refresh_snapshot()

        if self._ipc_watcher is not None:
            self._ipc_watcher.start(
                IpcDeps(
                    scheduler=self.scheduler,
                    run_relay=self.download_and_upload_video_to_drive,
                    prompt_dispatcher=self.prompts,
                    spawn=self.spawn,
                    default_delay_minutes=self.settings.default_delay_minutes,
                )
            )
        logger.info(
            "reelrelay started",
            chat_configured=bool(self.settings.chat_id),
            session_configured=bool(self.settings.session_string),
            default_folder=self.settings.default_folder_id or "not set",
        )

    async def shutdown(self) -> None:
        """Stop intake, then drain scheduled and background runs."""
        logger.info("Shutting down reelrelay...")
        if self._ipc_watcher is not None:
            await self._ipc_watcher.stop()
        await self.scheduler.stop()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("reelrelay shut down complete")

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        """Run ``coro`` in the background; shutdown waits for it."""
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # --- Exposed operations ---

    def schedule_auto_download(
        self,
        channel_id: str,
        schedule_id: str,
        user_id: str,
        telegram_message_id: int | None,
        delay_minutes: float | None = None,
        chat_id: str | None = None,
    ) -> str:
        delay = self.settings.default_delay_minutes if delay_minutes is None else delay_minutes
        return self.scheduler.schedule(channel_id, schedule_id, user_id, telegram_message_id, delay, chat_id=chat_id)

    def cancel_scheduled_task(self, task_id: str) -> bool:
        return self.scheduler.cancel(task_id)

    def cancel_tasks_for_schedule(self, channel_id: str, schedule_id: str) -> int:
        return self.scheduler.cancel_all(channel_id, schedule_id)

    def get_active_tasks(self) -> list[TaskSummary]:
        return self.scheduler.list()

    async def download_and_upload_video_to_drive(self, options: DownloadAndUploadOptions) -> DownloadAndUploadResult:
        return await self.orchestrator.run(options)

    async def send_prompt_and_schedule(
        self,
        channel_id: str,
        schedule_id: str,
        user_id: str,
        prompt: str,
        delay_minutes: float | None = None,
    ) -> tuple[SentPrompt, str]:
        return await self.prompts.send_and_schedule(channel_id, schedule_id, user_id, prompt, delay_minutes)

    def _refresh_snapshot(self) -> None:
        try:
            self._snapshot_writer.write_tasks(self.scheduler.list())
        except OSError as err:
            logger.warning("Failed to write active tasks snapshot", error=str(err))
