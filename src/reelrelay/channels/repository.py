"""Channel records, generated-video log, and the last-video pointer."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from reelrelay.channels.types import Channel, GeneratedVideoRecord
from reelrelay.storage.types import RemoteAsset

_CHANNEL_COLUMNS = (
    "id", "user_id", "name", "platform", "language", "target_duration_sec", "niche", "audience",
    "tone", "blocked_topics", "extra_notes", "generation_mode", "drive_folder_id",
    "last_video_drive_file_id", "last_video_drive_link", "last_video_updated_at",
    "created_at", "updated_at",
)


class ChannelRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def save_channel(self, channel: Channel) -> None:
        now = datetime.now(timezone.utc).isoformat()
        values = channel.model_dump()
        values["created_at"] = channel.created_at or now
        values["updated_at"] = now
        placeholders = ", ".join("?" for _ in _CHANNEL_COLUMNS)
        self._db.execute(
            f"INSERT OR REPLACE INTO channels ({', '.join(_CHANNEL_COLUMNS)}) VALUES ({placeholders})",
            tuple(values[col] for col in _CHANNEL_COLUMNS),
        )
        self._db.commit()

    def get_channel(self, user_id: str, channel_id: str) -> Channel | None:
        row = self._db.execute(
            "SELECT * FROM channels WHERE user_id = ? AND id = ?", (user_id, channel_id)
        ).fetchone()
        if not row:
            return None
        return Channel(**{col: row[col] for col in _CHANNEL_COLUMNS})

    def get_channels_for_user(self, user_id: str) -> list[Channel]:
        rows = self._db.execute(
            "SELECT * FROM channels WHERE user_id = ? ORDER BY created_at", (user_id,)
        ).fetchall()
        return [Channel(**{col: row[col] for col in _CHANNEL_COLUMNS}) for row in rows]

    def append_result_record(self, user_id: str, channel_id: str, record: GeneratedVideoRecord) -> None:
        self._db.execute(
            """INSERT INTO generated_videos
               (user_id, channel_id, drive_file_id, drive_web_view_link, drive_web_content_link, file_name,
                created_at, source, telegram_message_id, schedule_id, strategy)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                user_id, channel_id, record.drive_file_id, record.drive_web_view_link,
                record.drive_web_content_link, record.file_name, record.created_at.isoformat(),
                record.source, record.telegram_message_id, record.schedule_id, record.strategy,
            ),
        )
        self._db.commit()

    def get_result_records(self, user_id: str, channel_id: str) -> list[GeneratedVideoRecord]:
        rows = self._db.execute(
            """SELECT * FROM generated_videos WHERE user_id = ? AND channel_id = ?
               ORDER BY created_at DESC, id DESC""",
            (user_id, channel_id),
        ).fetchall()
        return [
            GeneratedVideoRecord(
                drive_file_id=row["drive_file_id"],
                drive_web_view_link=row["drive_web_view_link"],
                drive_web_content_link=row["drive_web_content_link"],
                file_name=row["file_name"],
                created_at=datetime.fromisoformat(row["created_at"]),
                source=row["source"],
                telegram_message_id=row["telegram_message_id"],
                schedule_id=row["schedule_id"],
                strategy=row["strategy"],
            )
            for row in rows
        ]

    def update_last_asset(self, user_id: str, channel_id: str, asset: RemoteAsset) -> None:
        now = datetime.now(timezone.utc).isoformat()
        cursor = self._db.execute(
            """UPDATE channels
               SET last_video_drive_file_id = ?, last_video_drive_link = ?, last_video_updated_at = ?, updated_at = ?
               WHERE user_id = ? AND id = ?""",
            (asset.file_id, asset.web_view_link, now, now, user_id, channel_id),
        )
        self._db.commit()
        if cursor.rowcount == 0:
            raise LookupError(f"Channel {channel_id} not found for user {user_id}")
