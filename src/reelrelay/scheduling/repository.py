"""Run logging for fired auto-download tasks."""

from __future__ import annotations

import sqlite3

from reelrelay.scheduling.types import TaskRunLog


class TaskRunRepository:
    def __init__(self, db: sqlite3.Connection) -> None:
        self._db = db

    def log_task_run(self, log: TaskRunLog) -> None:
        self._db.execute(
            """INSERT INTO task_run_logs
               (task_id, channel_id, schedule_id, run_at, duration_ms, status, drive_file_id, error)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                log.task_id, log.channel_id, log.schedule_id, log.run_at,
                log.duration_ms, log.status, log.drive_file_id, log.error,
            ),
        )
        self._db.commit()

    def get_runs(self, channel_id: str, schedule_id: str | None = None) -> list[TaskRunLog]:
        if schedule_id is None:
            rows = self._db.execute(
                "SELECT * FROM task_run_logs WHERE channel_id = ? ORDER BY run_at DESC, id DESC", (channel_id,)
            ).fetchall()
        else:
            rows = self._db.execute(
                """SELECT * FROM task_run_logs WHERE channel_id = ? AND schedule_id = ?
                   ORDER BY run_at DESC, id DESC""",
                (channel_id, schedule_id),
            ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def _row_to_log(self, row: sqlite3.Row) -> TaskRunLog:
        return TaskRunLog(
            task_id=row["task_id"],
            channel_id=row["channel_id"],
            schedule_id=row["schedule_id"],
            run_at=row["run_at"],
            duration_ms=row["duration_ms"],
            status=row["status"],
            drive_file_id=row["drive_file_id"],
            error=row["error"],
        )
