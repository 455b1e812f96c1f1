"""Staging domain types."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class StagedFile:
    path: Path
    size: int
    message_id: int
    file_name: str
    mime_type: str | None = None
