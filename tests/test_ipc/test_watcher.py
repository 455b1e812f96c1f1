"""Tests for the IPC command inbox and its handlers."""

import asyncio
import json

import pytest

from reelrelay.ipc.watcher import IpcDeps, IpcWatcher
from reelrelay.relay.dispatch import PromptDispatcher
from reelrelay.relay.types import DownloadAndUploadResult
from reelrelay.scheduling.scheduler import AutoDownloadScheduler


class RecordingRelay:
    def __init__(self):
        self.calls = []
        self.hold = None

    async def __call__(self, options):
        self.calls.append(options)
        if self.hold is not None:
            await self.hold.wait()
        return DownloadAndUploadResult(success=True, drive_file_id="f1", file_name="x.mp4", strategy="service")


@pytest.fixture
def harness(settings, fake_session_cls, fake_transport_cls, tmp_path):
    relay = RecordingRelay()
    scheduler = AutoDownloadScheduler(relay)
    session = fake_session_cls()
    prompts = PromptDispatcher(settings, fake_transport_cls(session), scheduler)
    spawned = []

    def spawn(coro, name):
        task = asyncio.ensure_future(coro)
        spawned.append((name, task))
        return task

    deps = IpcDeps(
        scheduler=scheduler,
        run_relay=relay,
        prompt_dispatcher=prompts,
        spawn=spawn,
        default_delay_minutes=10,
    )
    watcher = IpcWatcher(tmp_path / "ipc")
    return watcher, deps, relay, session, spawned


def _drop(watcher: IpcWatcher, name: str, payload) -> None:
    watcher.tasks_dir.mkdir(parents=True, exist_ok=True)
    text = payload if isinstance(payload, str) else json.dumps(payload)
    (watcher.tasks_dir / name).write_text(text)


def _response(watcher: IpcWatcher, request_id: str) -> dict:
    return json.loads((watcher.responses_dir / f"{request_id}.json").read_text())


class TestInbox:
    @pytest.mark.asyncio
    async def test_schedule_and_respond(self, harness):
        watcher, deps, *_ = harness
        deps.scheduler.start()
        _drop(watcher, "001.json", {
            "type": "schedule_auto_download",
            "requestId": "req-1",
            "channelId": "c1",
            "scheduleId": "s1",
            "userId": "u1",
            "telegramMessageId": "77",
        })

        await watcher.process_pending(deps)

        response = _response(watcher, "req-1")
        assert response["ok"] is True
        assert response["requestId"] == "req-1"
        [task] = deps.scheduler.list()
        assert task.id == response["taskId"]
        assert task.telegram_message_id == 77
        assert not (watcher.tasks_dir / "001.json").exists()
        await deps.scheduler.stop()

    @pytest.mark.asyncio
    async def test_no_request_id_no_response(self, harness):
        watcher, deps, *_ = harness
        deps.scheduler.start()
        _drop(watcher, "001.json", {"type": "list_tasks"})

        await watcher.process_pending(deps)

        assert not watcher.responses_dir.exists()
        assert list(watcher.tasks_dir.iterdir()) == []
        await deps.scheduler.stop()

    @pytest.mark.asyncio
    async def test_malformed_file_moved_to_errors(self, harness):
        watcher, deps, *_ = harness
        _drop(watcher, "bad.json", "{not json")

        await watcher.process_pending(deps)

        assert (watcher.errors_dir / "bad.json").exists()
        assert not (watcher.tasks_dir / "bad.json").exists()

    @pytest.mark.asyncio
    async def test_non_json_files_ignored(self, harness):
        watcher, deps, *_ = harness
        _drop(watcher, "notes.txt", "hello")

        await watcher.process_pending(deps)

        assert (watcher.tasks_dir / "notes.txt").exists()

    @pytest.mark.asyncio
    async def test_validation_error_reported(self, harness):
        watcher, deps, *_ = harness
        deps.scheduler.start()
        _drop(watcher, "001.json", {"type": "schedule_auto_download", "requestId": "req-2", "channelId": "c1"})

        await watcher.process_pending(deps)

        response = _response(watcher, "req-2")
        assert response["ok"] is False
        assert response["error"] == "Missing required fields"
        assert deps.scheduler.list() == []
        await deps.scheduler.stop()

    @pytest.mark.asyncio
    async def test_unknown_command(self, harness):
        watcher, deps, *_ = harness
        _drop(watcher, "001.json", {"type": "reboot", "requestId": "req-3"})

        await watcher.process_pending(deps)

        assert _response(watcher, "req-3")["error"] == "Unknown command: reboot"


class TestTaskCommands:
    @pytest.mark.asyncio
    async def test_schedule_when_stopped(self, harness):
        watcher, deps, *_ = harness
        response = await watcher.dispatch_command(
            {"type": "schedule_auto_download", "channelId": "c1", "scheduleId": "s1", "userId": "u1"}, deps
        )
        assert response["ok"] is False

    @pytest.mark.asyncio
    async def test_invalid_delay(self, harness):
        watcher, deps, *_ = harness
        deps.scheduler.start()
        response = await watcher.dispatch_command(
            {"type": "schedule_auto_download", "channelId": "c1", "scheduleId": "s1", "userId": "u1", "delayMinutes": "soon"},
            deps,
        )
        assert response["ok"] is False
        assert response["error"] == "Invalid delayMinutes"
        await deps.scheduler.stop()

    @pytest.mark.asyncio
    async def test_cancel_and_list(self, harness):
        watcher, deps, *_ = harness
        deps.scheduler.start()
        task_id = deps.scheduler.schedule("c1", "s1", "u1", 10, 5)
        deps.scheduler.schedule("c2", "s1", "u1", 10, 5)

        listed = await watcher.dispatch_command({"type": "list_tasks"}, deps)
        assert len(listed["tasks"]) == 2

        first = await watcher.dispatch_command({"type": "cancel_task", "taskId": task_id}, deps)
        again = await watcher.dispatch_command({"type": "cancel_task", "taskId": task_id}, deps)
        assert first["cancelled"] is True
        assert again["cancelled"] is False

        bulk = await watcher.dispatch_command({"type": "cancel_schedule_tasks", "channelId": "c2", "scheduleId": "s1"}, deps)
        assert bulk["cancelled"] == 1
        assert deps.scheduler.list() == []
        await deps.scheduler.stop()


class TestRelayCommands:
    @pytest.mark.asyncio
    async def test_waited_download_replies_when_done(self, harness):
        watcher, deps, relay, _, spawned = harness
        _drop(watcher, "001.json", {
            "type": "download_video",
            "requestId": "req-dl",
            "channelId": "c1",
            "userId": "u1",
            "telegramMessageId": 5,
            "videoTitle": "Soup",
            "wait": True,
        })

        await watcher.process_pending(deps)
        [(_, task)] = spawned
        await task
        await asyncio.sleep(0)

        response = _response(watcher, "req-dl")
        assert response["ok"] is True
        assert response["result"]["drive_file_id"] == "f1"
        [options] = relay.calls
        assert options.telegram_message_id == 5
        assert options.video_title == "Soup"

    @pytest.mark.asyncio
    async def test_inbox_not_blocked_by_waited_download(self, harness):
        watcher, deps, relay, _, spawned = harness
        relay.hold = asyncio.Event()
        deps.scheduler.start()
        _drop(watcher, "001.json", {"type": "download_video", "requestId": "req-dl", "channelId": "c1", "userId": "u1", "wait": True})
        _drop(watcher, "002.json", {"type": "schedule_auto_download", "requestId": "req-s", "channelId": "c1", "scheduleId": "s1", "userId": "u1"})

        await asyncio.wait_for(watcher.process_pending(deps), timeout=1)

        assert _response(watcher, "req-s")["ok"] is True
        assert len(deps.scheduler.list()) == 1
        assert not (watcher.responses_dir / "req-dl.json").exists()

        relay.hold.set()
        [(_, task)] = spawned
        await task
        await asyncio.sleep(0)
        assert _response(watcher, "req-dl")["result"]["success"] is True
        await deps.scheduler.stop()

    @pytest.mark.asyncio
    async def test_wait_without_request_id_runs_in_background(self, harness):
        watcher, deps, relay, _, spawned = harness
        response = await watcher.dispatch_command(
            {"type": "download_video", "channelId": "c1", "userId": "u1", "wait": True}, deps
        )
        assert response == {"ok": True, "started": True}
        await spawned[0][1]
        assert len(relay.calls) == 1

    @pytest.mark.asyncio
    async def test_download_background(self, harness):
        watcher, deps, relay, _, spawned = harness
        response = await watcher.dispatch_command({"type": "download_video", "channelId": "c1", "userId": "u1"}, deps)

        assert response == {"ok": True, "started": True}
        [(name, task)] = spawned
        assert name == "download:c1"
        await task
        assert len(relay.calls) == 1

    @pytest.mark.asyncio
    async def test_send_prompt_only(self, harness):
        watcher, deps, _, session, _ = harness
        response = await watcher.dispatch_command({"type": "send_prompt", "prompt": "make a video"}, deps)

        assert response == {"ok": True, "messageId": 1000, "chatId": "@syntxaibot"}
        assert session.sent == [("@syntxaibot", "make a video")]

    @pytest.mark.asyncio
    async def test_send_prompt_and_schedule(self, harness):
        watcher, deps, *_ = harness
        deps.scheduler.start()
        response = await watcher.dispatch_command(
            {"type": "send_prompt", "prompt": "make a video", "channelId": "c1", "scheduleId": "s1", "userId": "u1", "delayMinutes": 3},
            deps,
        )

        assert response["ok"] is True
        [task] = deps.scheduler.list()
        assert task.id == response["taskId"]
        assert task.telegram_message_id == 1000
        await deps.scheduler.stop()

    @pytest.mark.asyncio
    async def test_send_prompt_partial_schedule_fields(self, harness):
        watcher, deps, *_ = harness
        response = await watcher.dispatch_command(
            {"type": "send_prompt", "prompt": "make a video", "channelId": "c1"}, deps
        )
        assert response["ok"] is False

    @pytest.mark.asyncio
    async def test_send_prompt_transport_failure(self, harness, settings):
        watcher, deps, _, session, _ = harness
        settings.session_string = None

        response = await watcher.dispatch_command({"type": "send_prompt", "prompt": "hi"}, deps)

        assert response["ok"] is False
        assert response["details"]["code"] == "TELEGRAM_SESSION_NOT_INITIALIZED"
        assert session.sent == []
