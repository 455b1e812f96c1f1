import asyncio
from pathlib import Path

import pytest

from reelrelay.infrastructure.config import RelaySettings
from reelrelay.infrastructure.database import AppDatabase
from reelrelay.storage.strategies import UploadStrategy
from reelrelay.storage.types import RemoteAsset


class FakeSession:
    """In-memory chat session. ``messages`` is the chat history, newest first."""

    def __init__(self, messages=None, payloads=None):
        self.messages = list(messages or [])
        self.payloads = dict(payloads or {})
        self.list_calls = []
        self.fetched = []
        self.sent = []
        self.next_message_id = 1000
        self.list_delay = 0.0
        self.fetch_delay = 0.0
        self.fetch_error = None
        self.send_error = None
        self.disconnect_error = None
        self.disconnected = False

    async def list_messages(self, chat_id, limit=None, ids=None):
        self.list_calls.append({"chat_id": chat_id, "limit": limit, "ids": ids})
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if ids is not None:
            return [m for m in self.messages if m.id in ids]
        return self.messages[:limit] if limit else list(self.messages)

    async def fetch_media(self, message):
        self.fetched.append(message.id)
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.payloads.get(message.id, b"")

    async def send_text(self, chat_id, text):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((chat_id, text))
        return self.next_message_id

    async def disconnect(self):
        self.disconnected = True
        if self.disconnect_error is not None:
            raise self.disconnect_error


class FakeTransport:
    def __init__(self, session):
        self.session = session
        self.connects = []
        self.connect_error = None

    async def connect(self, session_string):
        self.connects.append(session_string)
        if self.connect_error is not None:
            raise self.connect_error
        return self.session


class FakeStrategy(UploadStrategy):
    """Upload strategy that either returns an asset or raises ``error``."""

    def __init__(self, name, error=None, file_id="drive-file-1"):
        self.name = name
        self.error = error
        self.file_id = file_id
        self.uploads = []

    async def client(self):
        raise NotImplementedError

    async def upload(self, local_path, file_name, mime_type, folder_id):
        self.uploads.append({
            "path": local_path,
            "existed": Path(local_path).exists(),
            "file_name": file_name,
            "mime_type": mime_type,
            "folder_id": folder_id,
        })
        if self.error is not None:
            raise self.error
        return RemoteAsset(
            file_id=self.file_id,
            web_view_link=f"https://drive.google.com/file/d/{self.file_id}/view",
            web_content_link=f"https://drive.google.com/uc?id={self.file_id}",
            name=file_name,
            strategy=self.name,
        )


class FakeStrategyFactory:
    def __init__(self, strategies):
        self.strategies = strategies
        self.requested_for = []

    def for_user(self, user_id):
        self.requested_for.append(user_id)
        return self.strategies


@pytest.fixture
def db() -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase()
    app_db._init_test()
    return app_db


@pytest.fixture
def settings(tmp_path) -> RelaySettings:
    return RelaySettings(
        session_string="test-session",
        chat_id="@syntxaibot",
        default_folder_id=None,
        telegram_api_id=12345,
        telegram_api_hash="hash",
        tmp_dir=tmp_path / "tmp",
        list_timeout_s=0.5,
        download_timeout_s=0.5,
    )


@pytest.fixture
def fake_session_cls():
    return FakeSession


@pytest.fixture
def fake_transport_cls():
    return FakeTransport


@pytest.fixture
def fake_strategy_cls():
    return FakeStrategy


@pytest.fixture
def fake_strategy_factory_cls():
    return FakeStrategyFactory
