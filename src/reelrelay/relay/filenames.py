"""Drive file naming for archived videos."""

from __future__ import annotations

import re
import time
from pathlib import PurePath

_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|]')
_WHITESPACE = re.compile(r"\s+")
_UNDERSCORES = re.compile(r"_+")
_VIDEO_EXT = re.compile(r"\.(mp4|avi|mov|mkv|webm)$", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w\-]+", re.ASCII)

MAX_TITLE_LENGTH = 120
MAX_CHANNEL_NAME_LENGTH = 50


def sanitize_file_name(title: str | None) -> str:
    """Make a user-supplied title safe for any filesystem. Falls back to ``video``."""
    if not title or not isinstance(title, str):
        return "video"
    cleaned = _UNSAFE_CHARS.sub("_", title.strip())
    cleaned = _WHITESPACE.sub("_", cleaned)
    cleaned = _UNDERSCORES.sub("_", cleaned)
    cleaned = cleaned.strip("_")
    return cleaned[:MAX_TITLE_LENGTH] or "video"


def format_file_name(title: str | None, extension: str = ".mp4") -> str:
    """Sanitized title with any existing video extension swapped for ``extension``."""
    return f"{_VIDEO_EXT.sub('', sanitize_file_name(title))}{extension}"


def safe_channel_name(name: str | None, channel_id: str) -> str:
    safe = _NON_WORD.sub("_", name or "")[:MAX_CHANNEL_NAME_LENGTH]
    return safe or f"channel_{channel_id}"


def build_drive_file_name(
    video_title: str | None,
    channel_name: str | None,
    channel_id: str,
    now_ms: int | None = None,
) -> str:
    if video_title and video_title.strip():
        return format_file_name(video_title)
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{safe_channel_name(channel_name, channel_id)}_{timestamp}.mp4"


def declared_extension(file_name: str | None) -> str:
    """Extension of the declared name, ``.mp4`` when there is none."""
    suffix = PurePath(file_name).suffix if file_name else ""
    return suffix.lower() if suffix else ".mp4"
