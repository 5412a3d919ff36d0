from __future__ import annotations

import datetime
import logging
import sqlite3

import aiosqlite

from db import AsyncProgramHistoryRepository, ProgramHistoryRepository, to_iso
from exceptions import StorageError

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """Appends completion records to the program history log.

    When an open transaction connection is passed the row is written
    through it and the caller owns commit and rollback; otherwise the
    insert is committed on its own.
    """

    def __init__(self, history_repo: ProgramHistoryRepository) -> None:
        self.history = history_repo

    def record_completion(
        self,
        program_id: int,
        day: dict,
        performed_at: datetime.datetime | str,
        duration_seconds: int | None,
        conn: sqlite3.Connection | None = None,
    ) -> int:
        if duration_seconds is not None and duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")
        timestamp = to_iso(performed_at)
        try:
            history_id = self.history.append(
                program_id,
                day["id"],
                day["day_index"],
                day["name"],
                timestamp,
                duration_seconds,
                conn=conn,
            )
        except sqlite3.Error as e:
            logger.error(
                "could not record day %s of program %s: %s", day["id"], program_id, e
            )
            raise StorageError(str(e)) from e
        logger.debug(
            "recorded history %s: program %s day %s at %s",
            history_id,
            program_id,
            day["day_index"],
            timestamp,
        )
        return history_id


class AsyncHistoryRecorder:
    """Awaitable counterpart of :class:`HistoryRecorder`."""

    def __init__(self, history_repo: AsyncProgramHistoryRepository) -> None:
        self.history = history_repo

    async def record_completion(
        self,
        program_id: int,
        day: dict,
        performed_at: datetime.datetime | str,
        duration_seconds: int | None,
        conn: aiosqlite.Connection | None = None,
    ) -> int:
        if duration_seconds is not None and duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")
        timestamp = to_iso(performed_at)
        try:
            return await self.history.append(
                program_id,
                day["id"],
                day["day_index"],
                day["name"],
                timestamp,
                duration_seconds,
                conn=conn,
            )
        except sqlite3.Error as e:
            logger.error(
                "could not record day %s of program %s: %s", day["id"], program_id, e
            )
            raise StorageError(str(e)) from e
