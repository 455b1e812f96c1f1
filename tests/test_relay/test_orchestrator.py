"""Tests for the relay orchestrator run."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from reelrelay.channels.types import Channel
from reelrelay.errors import DelegatedCredentialInvalid, FolderPermissionDenied
from reelrelay.relay.locator import MediaDownloader
from reelrelay.relay.orchestrator import RelayOrchestrator
from reelrelay.relay.types import DownloadAndUploadOptions
from reelrelay.staging.store import TempStagingStore
from reelrelay.transport.types import ChatMediaMessage

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _video(id, minute, **kwargs):
    return ChatMediaMessage(id=id, sent_at=BASE + timedelta(minutes=minute), kind="video", **kwargs)


def _prompt(id, minute):
    return ChatMediaMessage(id=id, sent_at=BASE + timedelta(minutes=minute), kind="other")


@pytest.fixture
def channel(db):
    ch = Channel(id="c1", user_id="u1", name="Cats & Dogs", drive_folder_id="folder-1")
    db.channel_repo.save_channel(ch)
    return ch


@pytest.fixture
def session(fake_session_cls):
    return fake_session_cls(
        [_video(12, 12), _prompt(10, 10), _video(5, 5)],
        payloads={12: b"fresh render", 5: b"old render"},
    )


@pytest.fixture
def make_orchestrator(settings, db, fake_transport_cls, fake_strategy_factory_cls):
    def _make(session, strategies):
        staging = TempStagingStore(settings.tmp_dir, settings.max_file_size)
        downloader = MediaDownloader(staging, list_timeout_s=0.5, download_timeout_s=0.5)
        transport = fake_transport_cls(session)
        factory = fake_strategy_factory_cls(strategies)
        orchestrator = RelayOrchestrator(settings, transport, downloader, staging, factory, db.channel_repo)
        return orchestrator, transport, factory
    return _make


def _staged_files(settings):
    return list(settings.tmp_dir.iterdir()) if settings.tmp_dir.exists() else []


class TestSuccessfulRun:
    @pytest.mark.asyncio
    async def test_anchor_prompt_relays_following_video(
        self, channel, session, make_orchestrator, fake_strategy_cls, settings, db
    ):
        strategy = fake_strategy_cls("delegated", file_id="f-12")
        orchestrator, transport, _ = make_orchestrator(session, [strategy])

        result = await orchestrator.run(DownloadAndUploadOptions(
            channel_id="c1", user_id="u1", telegram_message_id=10, schedule_id="s1",
        ))

        assert result.success is True
        assert result.error is None
        assert result.drive_file_id == "f-12"
        assert result.strategy == "delegated"
        assert session.fetched == [12]
        assert session.disconnected is True
        assert transport.connects == ["test-session"]

        upload = strategy.uploads[0]
        assert upload["existed"] is True
        assert upload["folder_id"] == "folder-1"
        assert upload["mime_type"] == "video/mp4"
        assert upload["file_name"].startswith("Cats_Dogs_")
        assert _staged_files(settings) == []

        records = db.channel_repo.get_result_records("u1", "c1")
        assert len(records) == 1
        assert records[0].source == "auto-scheduled"
        assert records[0].telegram_message_id == 10
        assert records[0].schedule_id == "s1"
        updated = db.channel_repo.get_channel("u1", "c1")
        assert updated.last_video_drive_file_id == "f-12"
        assert updated.last_video_updated_at is not None

    @pytest.mark.asyncio
    async def test_title_names_the_file_and_manual_source(self, channel, session, make_orchestrator, fake_strategy_cls, db):
        strategy = fake_strategy_cls("service")
        orchestrator, _, _ = make_orchestrator(session, [strategy])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1", video_title="Best: cat"))

        assert result.success is True
        assert result.file_name == "Best_cat.mp4"
        assert db.channel_repo.get_result_records("u1", "c1")[0].source == "manual"

    @pytest.mark.asyncio
    async def test_default_folder_used_when_channel_has_none(
        self, db, session, make_orchestrator, fake_strategy_cls, settings
    ):
        db.channel_repo.save_channel(Channel(id="c2", user_id="u1", name="No folder"))
        settings.default_folder_id = "default-folder"
        strategy = fake_strategy_cls("service")
        orchestrator, _, _ = make_orchestrator(session, [strategy])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c2", user_id="u1"))

        assert result.success is True
        assert strategy.uploads[0]["folder_id"] == "default-folder"

    @pytest.mark.asyncio
    async def test_fallback_to_service_account(self, channel, session, make_orchestrator, fake_strategy_cls):
        delegated = fake_strategy_cls("delegated", error=DelegatedCredentialInvalid("token revoked"))
        service = fake_strategy_cls("service", file_id="svc-1")
        orchestrator, _, _ = make_orchestrator(session, [delegated, service])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1", telegram_message_id=10))

        assert result.success is True
        assert result.strategy == "service"
        assert result.drive_file_id == "svc-1"

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_fail_run(
        self, channel, session, make_orchestrator, fake_strategy_cls, db, monkeypatch
    ):
        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(db.channel_repo, "append_result_record", broken)
        orchestrator, _, _ = make_orchestrator(session, [fake_strategy_cls("service")])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.success is True
        assert db.channel_repo.get_channel("u1", "c1").last_video_drive_file_id == "drive-file-1"

    @pytest.mark.asyncio
    async def test_disconnect_error_is_swallowed(self, channel, session, make_orchestrator, fake_strategy_cls):
        session.disconnect_error = ConnectionError("already closed")
        orchestrator, _, _ = make_orchestrator(session, [fake_strategy_cls("service")])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.success is True


class TestPrecheck:
    @pytest.mark.asyncio
    async def test_missing_session(self, channel, session, make_orchestrator, fake_strategy_cls, settings):
        settings.session_string = None
        orchestrator, transport, _ = make_orchestrator(session, [fake_strategy_cls("service")])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.success is False
        assert result.error_code == "TELEGRAM_SESSION_NOT_INITIALIZED"
        assert transport.connects == []

    @pytest.mark.asyncio
    async def test_missing_chat_id(self, channel, session, make_orchestrator, fake_strategy_cls, settings):
        settings.chat_id = None
        orchestrator, transport, _ = make_orchestrator(session, [fake_strategy_cls("service")])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.error_code == "SYNX_CHAT_ID_NOT_CONFIGURED"
        assert transport.connects == []

    @pytest.mark.asyncio
    async def test_unknown_channel(self, session, make_orchestrator, fake_strategy_cls):
        orchestrator, transport, _ = make_orchestrator(session, [fake_strategy_cls("service")])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="missing", user_id="u1"))

        assert result.error_code == "CHANNEL_NOT_FOUND"
        assert transport.connects == []

    @pytest.mark.asyncio
    async def test_no_destination_folder(self, db, session, make_orchestrator, fake_strategy_cls):
        db.channel_repo.save_channel(Channel(id="c3", user_id="u1", name="Homeless"))
        orchestrator, transport, _ = make_orchestrator(session, [fake_strategy_cls("service")])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c3", user_id="u1"))

        assert result.success is False
        assert result.error_code == "DRIVE_FOLDER_NOT_CONFIGURED"
        assert transport.connects == []


class TestFailedRun:
    @pytest.mark.asyncio
    async def test_video_not_ready(self, channel, make_orchestrator, fake_session_cls, fake_strategy_cls, db):
        session = fake_session_cls([_prompt(10, 10), _video(5, 5)], payloads={5: b"old"})
        strategy = fake_strategy_cls("service")
        orchestrator, _, _ = make_orchestrator(session, [strategy])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1", telegram_message_id=10))

        assert result.success is False
        assert result.error_code == "NO_VIDEO_FOUND"
        assert result.drive_file_id is None
        assert strategy.uploads == []
        assert session.disconnected is True
        assert db.channel_repo.get_result_records("u1", "c1") == []

    @pytest.mark.asyncio
    async def test_all_strategies_fail(self, channel, session, make_orchestrator, fake_strategy_cls, settings, db):
        delegated = fake_strategy_cls("delegated", error=DelegatedCredentialInvalid("token revoked"))
        service = fake_strategy_cls("service", error=FolderPermissionDenied("folder-1"))
        orchestrator, _, _ = make_orchestrator(session, [delegated, service])

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.success is False
        assert result.error_code == "GOOGLE_DRIVE_UPLOAD_FAILED"
        assert "delegated upload error" in result.error
        assert "service upload error" in result.error
        assert "token revoked" in result.error
        assert _staged_files(settings) == []
        assert db.channel_repo.get_result_records("u1", "c1") == []
        assert db.channel_repo.get_channel("u1", "c1").last_video_drive_file_id is None

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped_with_step(
        self, channel, session, make_orchestrator, fake_strategy_cls, settings
    ):
        orchestrator, _, factory = make_orchestrator(session, [fake_strategy_cls("service")])

        def explode(user_id):
            raise KeyError("credential store offline")

        factory.for_user = explode

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.success is False
        assert result.error_code == "UNKNOWN_ERROR"
        assert "upload failed" in result.error
        assert _staged_files(settings) == []

    @pytest.mark.asyncio
    async def test_connect_failure_returns_result(self, channel, session, make_orchestrator, fake_strategy_cls):
        orchestrator, transport, _ = make_orchestrator(session, [fake_strategy_cls("service")])
        transport.connect_error = OSError("network unreachable")

        result = await orchestrator.run(DownloadAndUploadOptions(channel_id="c1", user_id="u1"))

        assert result.success is False
        assert result.error_code == "UNKNOWN_ERROR"
        assert "connect failed" in result.error
