"""Channel domain types."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class Channel(BaseModel):
    id: str
    user_id: str
    name: str
    platform: Literal["YOUTUBE_SHORTS", "TIKTOK", "INSTAGRAM_REELS", "VK_CLIPS"] = "YOUTUBE_SHORTS"
    language: Literal["ru", "en", "kk"] = "ru"
    target_duration_sec: int = 15
    niche: str = ""
    audience: str = ""
    tone: str = ""
    blocked_topics: str = ""
    extra_notes: str | None = None
    generation_mode: Literal["script", "prompt", "video-prompt-only"] = "script"
    drive_folder_id: str | None = None
    last_video_drive_file_id: str | None = None
    last_video_drive_link: str | None = None
    last_video_updated_at: str | None = None
    created_at: str = ""
    updated_at: str = ""


class GeneratedVideoRecord(BaseModel):
    drive_file_id: str
    drive_web_view_link: str | None = None
    drive_web_content_link: str | None = None
    file_name: str | None = None
    created_at: datetime
    source: Literal["auto-scheduled", "manual"]
    telegram_message_id: int | None = None
    schedule_id: str | None = None
    strategy: str | None = None
