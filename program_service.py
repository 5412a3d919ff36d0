from __future__ import annotations

import datetime
import logging
import sqlite3
from contextlib import contextmanager

from algorithms import ProgramSequencer
from db import (
    to_iso,
    ProgramRepository,
    ProgramDayRepository,
    ProgramDayExerciseRepository,
    ProgramHistoryRepository,
    PersonalRecordRepository,
    AsyncProgramRepository,
    AsyncProgramHistoryRepository,
)
from exceptions import NoDaysDefined, ProgramNotFound, StorageError
from history_recorder import AsyncHistoryRecorder, HistoryRecorder

logger = logging.getLogger(__name__)


@contextmanager
def storage_errors(action: str):
    """Translate database failures into :class:`StorageError`."""
    try:
        yield
    except sqlite3.Error as e:
        logger.error("storage failure while %s: %s", action, e)
        raise StorageError(str(e)) from e


class ProgramService:
    """Builds programs and drives their day sequence."""

    def __init__(
        self,
        program_repo: ProgramRepository,
        day_repo: ProgramDayRepository,
        exercise_repo: ProgramDayExerciseRepository,
        history_repo: ProgramHistoryRepository,
        recorder: HistoryRecorder | None = None,
        record_repo: PersonalRecordRepository | None = None,
    ) -> None:
        self.programs = program_repo
        self.days = day_repo
        self.exercises = exercise_repo
        self.history_log = history_repo
        self.recorder = recorder or HistoryRecorder(history_repo)
        self.records = record_repo

    # -- builder -----------------------------------------------------------

    def create_program(
        self,
        name: str,
        description: str | None = None,
        day_names: list[str] | None = None,
    ) -> int:
        with storage_errors("creating program"):
            program_id = self.programs.create(name, description)
            for day_name in day_names or []:
                self.days.add(program_id, day_name)
        logger.info("created program %s (%s)", program_id, name)
        return program_id

    def list_programs(self) -> list[dict]:
        with storage_errors("listing programs"):
            return self.programs.fetch_all()

    def program_detail(self, program_id: int) -> dict:
        with storage_errors("loading program"):
            return self.programs.fetch_detail(program_id)

    def rename_program(
        self, program_id: int, name: str | None, description: str | None = None
    ) -> None:
        with storage_errors("updating program"):
            self.programs.update(program_id, name, description)

    def delete_program(self, program_id: int) -> None:
        with storage_errors("deleting program"):
            self.programs.delete(program_id)
        logger.info("deleted program %s", program_id)

    def activate_program(self, program_id: int) -> None:
        with storage_errors("activating program"):
            self.programs.get_program(program_id)
            if self.days.count(program_id) == 0:
                raise NoDaysDefined(program_id)
            self.programs.set_active(program_id)
        logger.info("program %s is now active", program_id)

    def deactivate_program(self, program_id: int) -> None:
        with storage_errors("deactivating program"):
            self.programs.deactivate(program_id)

    def clone_program(self, program_id: int, new_name: str) -> int:
        """Copy a program's days and exercises under ``new_name``."""
        with storage_errors("cloning program"):
            source = self.programs.fetch_detail(program_id)
            new_id = self.programs.create(new_name, source["description"])
            for day in source["days"]:
                new_day = self.days.add(new_id, day["name"], day["weekday"])
                for ex in day["exercises"]:
                    self.exercises.add(
                        new_day,
                        ex["exercise_name"],
                        ex["target_sets"],
                        ex["target_reps"],
                        ex["rest_seconds"],
                        ex["rpe"],
                        ex["target_weight"],
                        ex["notes"],
                    )
        return new_id

    def add_day(self, program_id: int, name: str, weekday: str | None = None) -> int:
        with storage_errors("adding day"):
            return self.days.add(program_id, name, weekday)

    def rename_day(
        self, day_id: int, name: str | None = None, weekday: str | None = None
    ) -> None:
        with storage_errors("updating day"):
            self.days.update(day_id, name, weekday)

    def remove_day(self, program_id: int, day_id: int) -> int:
        with storage_errors("removing day"):
            return self.days.delete(program_id, day_id)

    def reorder_days(self, program_id: int, order: list[int]) -> None:
        with storage_errors("reordering days"):
            self.days.reorder(program_id, order)

    def add_exercise(self, day_id: int, exercise_name: str, **targets) -> int:
        with storage_errors("adding exercise"):
            return self.exercises.add(day_id, exercise_name, **targets)

    def update_exercise(self, exercise_id: int, **fields) -> None:
        with storage_errors("updating exercise"):
            self.exercises.update(exercise_id, **fields)

    def remove_exercise(self, exercise_id: int) -> None:
        with storage_errors("removing exercise"):
            self.exercises.remove(exercise_id)

    def reorder_exercises(self, day_id: int, order: list[int]) -> None:
        with storage_errors("reordering exercises"):
            self.exercises.reorder(day_id, order)

    # -- sequencing --------------------------------------------------------

    def get_current_day(self, program_id: int) -> dict:
        with storage_errors("loading current day"):
            program = self.programs.get_program(program_id)
            days = self.days.list_days(program_id)
        return ProgramSequencer.current_day(program, days)

    def select_day(self, program_id: int, day_index: int) -> dict:
        """Return the requested day; the stored pointer is left untouched."""
        with storage_errors("loading day"):
            self.programs.get_program(program_id)
            days = self.days.list_days(program_id)
        return ProgramSequencer.select_day(days, day_index)

    def complete_in(
        self,
        conn: sqlite3.Connection,
        program_id: int,
        day_index: int,
        performed_at: datetime.datetime | str,
        duration_seconds: int | None = None,
    ) -> int:
        """Complete a day through a transaction the caller already holds."""
        self.programs.get_program(program_id, conn)
        days = self.days.list_days(program_id, conn, with_exercises=False)
        if not days:
            raise NoDaysDefined(program_id)
        day = ProgramSequencer.select_day(days, day_index)
        next_index = ProgramSequencer.next_index(day_index, len(days))
        history_id = self.recorder.record_completion(
            program_id, day, performed_at, duration_seconds, conn=conn
        )
        self.programs.update_current_day_index(program_id, next_index, conn)
        logger.info(
            "program %s: completed day %d (%s), next day %d",
            program_id,
            day_index,
            day["name"],
            next_index,
        )
        return history_id

    def complete_day(
        self,
        program_id: int,
        day_index: int,
        performed_at: datetime.datetime | str | None = None,
        duration_seconds: int | None = None,
    ) -> int:
        """Record ``day_index`` as performed and advance the pointer past it.

        The history row and the pointer update commit together or not at all.
        """
        return self.finish_day(program_id, day_index, performed_at, duration_seconds)

    def history(
        self,
        program_id: int | None = None,
        start: str | None = None,
        end: str | None = None,
    ) -> list[dict]:
        with storage_errors("querying history"):
            if program_id is not None:
                self.programs.get_program(program_id)
            return self.history_log.query_history(program_id, start, end)

    # -- UI operations -----------------------------------------------------

    def _active_program(self) -> dict:
        with storage_errors("loading active program"):
            program = self.programs.fetch_active()
        if program is None:
            raise ProgramNotFound()
        return program

    def start_active_program(self) -> dict:
        program = self._active_program()
        day = self.get_current_day(program["id"])
        return {"program": program, "day": day, "is_override": False}

    def choose_day(self, program_id: int, day_index: int) -> dict:
        with storage_errors("loading day"):
            program = self.programs.get_program(program_id)
            days = self.days.list_days(program_id)
        day = ProgramSequencer.select_day(days, day_index)
        return {"program": program, "day": day, "is_override": True}

    def finish_day(
        self,
        program_id: int,
        day_index: int,
        performed_at: datetime.datetime | str | None = None,
        duration_seconds: int | None = None,
        lifts: list[tuple[str, int, float]] | None = None,
    ) -> int:
        """Complete a day and store any personal records from ``lifts``.

        Lifts are checked before anything is written. The history row, the
        pointer move and the records commit in one transaction.
        """
        if performed_at is None:
            performed_at = datetime.datetime.now()
        lifts = list(lifts or [])
        if lifts and self.records is None:
            raise ValueError("personal records are not available")
        for exercise, reps, weight in lifts:
            PersonalRecordRepository.check_lift(exercise, reps, weight)
        achieved_at = to_iso(performed_at)
        new_records = []
        with storage_errors("completing day"):
            with self.programs.transaction() as conn:
                history_id = self.complete_in(
                    conn, program_id, day_index, performed_at, duration_seconds
                )
                for exercise, reps, weight in lifts:
                    if self.records.record_if_best(
                        exercise, reps, weight, achieved_at, history_id, conn=conn
                    ):
                        new_records.append((exercise, reps, weight))
        for exercise, reps, weight in new_records:
            logger.info("new record: %s %d x %.1f kg", exercise, reps, weight)
        return history_id


class AsyncProgramService:
    """Sequencing operations on the aiosqlite repositories."""

    def __init__(
        self,
        program_repo: AsyncProgramRepository,
        history_repo: AsyncProgramHistoryRepository,
        recorder: AsyncHistoryRecorder | None = None,
    ) -> None:
        self.programs = program_repo
        self.history_log = history_repo
        self.recorder = recorder or AsyncHistoryRecorder(history_repo)

    async def get_current_day(self, program_id: int) -> dict:
        with storage_errors("loading current day"):
            program = await self.programs.get_program(program_id)
            days = await self.programs.list_days(program_id)
        return ProgramSequencer.current_day(program, days)

    async def select_day(self, program_id: int, day_index: int) -> dict:
        with storage_errors("loading day"):
            await self.programs.get_program(program_id)
            days = await self.programs.list_days(program_id)
        return ProgramSequencer.select_day(days, day_index)

    async def complete_day(
        self,
        program_id: int,
        day_index: int,
        performed_at: datetime.datetime | str | None = None,
        duration_seconds: int | None = None,
    ) -> int:
        if performed_at is None:
            performed_at = datetime.datetime.now()
        with storage_errors("completing day"):
            async with self.programs.async_transaction() as conn:
                await self.programs.get_program(program_id, conn)
                days = await self.programs.list_days(
                    program_id, conn, with_exercises=False
                )
                if not days:
                    raise NoDaysDefined(program_id)
                day = ProgramSequencer.select_day(days, day_index)
                next_index = ProgramSequencer.next_index(day_index, len(days))
                history_id = await self.recorder.record_completion(
                    program_id, day, performed_at, duration_seconds, conn=conn
                )
                await self.programs.update_current_day_index(
                    program_id, next_index, conn
                )
        logger.info(
            "program %s: completed day %d, next day %d",
            program_id,
            day_index,
            next_index,
        )
        return history_id

    async def start_active_program(self) -> dict:
        with storage_errors("loading active program"):
            program = await self.programs.fetch_active()
        if program is None:
            raise ProgramNotFound()
        day = await self.get_current_day(program["id"])
        return {"program": program, "day": day, "is_override": False}

    async def choose_day(self, program_id: int, day_index: int) -> dict:
        with storage_errors("loading day"):
            program = await self.programs.get_program(program_id)
            days = await self.programs.list_days(program_id)
        day = ProgramSequencer.select_day(days, day_index)
        return {"program": program, "day": day, "is_override": True}

    async def finish_day(
        self,
        program_id: int,
        day_index: int,
        performed_at: datetime.datetime | str | None = None,
        duration_seconds: int | None = None,
    ) -> int:
        return await self.complete_day(
            program_id, day_index, performed_at, duration_seconds
        )
