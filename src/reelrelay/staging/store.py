"""Local staging directory for downloaded media.

Payloads are buffered in memory by the caller, validated here, then written
under a unique name. Files never outlive a relay run: the orchestrator calls
``remove`` on every exit path.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from pathlib import Path

from reelrelay.errors import EmptyDownload, FileTooLarge, StagingError
from reelrelay.infrastructure.config import MAX_FILE_SIZE, TMP_DIR
from reelrelay.infrastructure.logger import logger


def _normalize_ext(ext: str | None) -> str:
    if not ext:
        return ".mp4"
    ext = ext.lower()
    return ext if ext.startswith(".") else f".{ext}"


class TempStagingStore:
    def __init__(self, root: Path = TMP_DIR, max_file_size: int = MAX_FILE_SIZE) -> None:
        self.root = root
        self.max_file_size = max_file_size

    def ensure_dir(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def allocate_path(self, ext: str | None = ".mp4") -> Path:
        """Unique ``<ms>_<8 hex><ext>`` path inside the staging root."""
        name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{_normalize_ext(ext)}"
        return self.ensure_dir() / name

    async def write_payload(self, payload: bytes, ext: str | None = ".mp4", message_id: int | None = None) -> Path:
        size = len(payload)
        if size == 0:
            raise EmptyDownload(message_id)
        if size > self.max_file_size:
            raise FileTooLarge(size, self.max_file_size)

        path = self.allocate_path(ext)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, path.write_bytes, payload)
            written = path.stat().st_size
        except OSError as err:
            self.remove(path)
            raise StagingError(f"Could not write staged file: {err}", {"path": str(path)}) from err

        if written == 0:
            self.remove(path)
            raise EmptyDownload(message_id)
        if written > self.max_file_size:
            self.remove(path)
            raise FileTooLarge(written, self.max_file_size)

        logger.debug("Payload staged", path=str(path), size=written, message_id=message_id)
        return path

    def remove(self, path: Path | None) -> None:
        """Delete a staged file. Never raises."""
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as err:
            logger.warning("Failed to remove staged file", path=str(path), error=str(err))
