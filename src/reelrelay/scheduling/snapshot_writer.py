"""Writes the live auto-download table as JSON for collaborators to read."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from reelrelay.infrastructure.config import DATA_DIR
from reelrelay.scheduling.types import TaskSummary


class SnapshotWriter:
    """Mirrors the scheduler's live tasks to ``active_tasks.json``."""

    def __init__(self, ipc_dir: Path = DATA_DIR / "ipc") -> None:
        self._ipc_dir = ipc_dir

    @property
    def tasks_file(self) -> Path:
        return self._ipc_dir / "active_tasks.json"

    def write_tasks(self, tasks: list[TaskSummary]) -> None:
        self._ipc_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "tasks": [t.model_dump() for t in tasks],
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
        # tmp + rename so readers never see a partial file
        temp_path = self.tasks_file.with_suffix(".json.tmp")
        temp_path.write_text(json.dumps(payload, indent=2))
        temp_path.replace(self.tasks_file)
