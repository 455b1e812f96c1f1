"""SQLite database schema and AppDatabase composition root."""

from __future__ import annotations

import sqlite3

from reelrelay.infrastructure.config import STORE_DIR
from reelrelay.infrastructure.logger import logger


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            drive_access_token TEXT,
            drive_refresh_token TEXT,
            drive_token_expiry TEXT,
            updated_at TEXT
        );

        CREATE TABLE IF NOT EXISTS channels (
            id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            platform TEXT NOT NULL DEFAULT 'YOUTUBE_SHORTS',
            language TEXT NOT NULL DEFAULT 'ru',
            target_duration_sec INTEGER NOT NULL DEFAULT 15,
            niche TEXT NOT NULL DEFAULT '',
            audience TEXT NOT NULL DEFAULT '',
            tone TEXT NOT NULL DEFAULT '',
            blocked_topics TEXT NOT NULL DEFAULT '',
            extra_notes TEXT,
            generation_mode TEXT NOT NULL DEFAULT 'script',
            drive_folder_id TEXT,
            last_video_drive_file_id TEXT,
            last_video_drive_link TEXT,
            last_video_updated_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (user_id, id)
        );

        CREATE TABLE IF NOT EXISTS generated_videos (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            channel_id TEXT NOT NULL,
            drive_file_id TEXT NOT NULL,
            drive_web_view_link TEXT,
            drive_web_content_link TEXT,
            file_name TEXT,
            created_at TEXT NOT NULL,
            source TEXT NOT NULL,
            telegram_message_id INTEGER,
            schedule_id TEXT,
            strategy TEXT,
            FOREIGN KEY (user_id, channel_id) REFERENCES channels(user_id, id)
        );
        CREATE INDEX IF NOT EXISTS idx_generated_videos_channel ON generated_videos(user_id, channel_id, created_at);

        CREATE TABLE IF NOT EXISTS task_run_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id TEXT NOT NULL,
            channel_id TEXT NOT NULL,
            schedule_id TEXT NOT NULL,
            run_at TEXT NOT NULL,
            duration_ms INTEGER NOT NULL,
            status TEXT NOT NULL,
            drive_file_id TEXT,
            error TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_task_run_logs ON task_run_logs(channel_id, schedule_id, run_at);
    """)


class AppDatabase:
    """Composition root that initializes the DB and exposes repositories."""

    def __init__(self) -> None:
        self._db: sqlite3.Connection | None = None
        # Repositories are set after init
        self.channel_repo: ChannelRepository | None = None  # type: ignore[assignment]
        self.credential_repo: UserCredentialRepository | None = None  # type: ignore[assignment]
        self.run_repo: TaskRunRepository | None = None  # type: ignore[assignment]

    @property
    def db(self) -> sqlite3.Connection:
        assert self._db is not None, "Database not initialized. Call init() first."
        return self._db

    def init(self) -> None:
        """Open (or create) the database file at the standard location."""
        db_path = STORE_DIR / "relay.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = sqlite3.connect(str(db_path))
        self._db.row_factory = sqlite3.Row
        self._init_repos()
        logger.info("Database opened", path=str(db_path))

    def _init_test(self) -> None:
        """For tests only. Creates a fresh in-memory database."""
        self._db = sqlite3.connect(":memory:")
        self._db.row_factory = sqlite3.Row
        self._init_repos()

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None

    def _init_repos(self) -> None:
        assert self._db is not None
        create_schema(self._db)

        # Import here to avoid circular imports
        from reelrelay.channels.repository import ChannelRepository
        from reelrelay.scheduling.repository import TaskRunRepository
        from reelrelay.users.repository import UserCredentialRepository

        self.channel_repo = ChannelRepository(self._db)
        self.credential_repo = UserCredentialRepository(self._db)
        self.run_repo = TaskRunRepository(self._db)
