import datetime
import os
import sqlite3
import sys
import unittest
from unittest import mock

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    PersonalRecordRepository,
    ProgramDayExerciseRepository,
    ProgramDayRepository,
    ProgramHistoryRepository,
    ProgramRepository,
)
from exceptions import InvalidDayIndex, NoDaysDefined, ProgramNotFound, StorageError
from program_service import ProgramService


def make_service(db_path: str) -> ProgramService:
    return ProgramService(
        ProgramRepository(db_path),
        ProgramDayRepository(db_path),
        ProgramDayExerciseRepository(db_path),
        ProgramHistoryRepository(db_path),
        record_repo=PersonalRecordRepository(db_path),
    )


class ProgramServiceTest(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_program_service.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.service = make_service(self.db_path)
        self.pid = self.service.create_program(
            "Upper/Lower", "two day split", day_names=["Upper", "Lower"]
        )

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def _pointer(self) -> int:
        return self.service.programs.get_program(self.pid)["current_day_index"]

    def test_upper_lower_scenario(self) -> None:
        t1 = datetime.datetime(2024, 1, 1, 9, 0)
        hid = self.service.complete_day(self.pid, 0, t1, 1800)
        self.assertEqual(self._pointer(), 1)
        history = self.service.history(self.pid)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0]["id"], hid)
        self.assertEqual(history[0]["day_index"], 0)
        self.assertEqual(history[0]["day_name"], "Upper")
        self.assertEqual(history[0]["performed_at"], "2024-01-01T09:00:00")
        self.assertEqual(history[0]["duration_seconds"], 1800)

        day = self.service.select_day(self.pid, 1)
        self.assertEqual(day["name"], "Lower")
        self.assertEqual(self._pointer(), 1)

        self.service.complete_day(self.pid, 1, datetime.datetime(2024, 1, 3, 9), 2000)
        self.assertEqual(self._pointer(), 0)
        self.assertEqual(self.service.history_log.count(self.pid), 2)

    def test_override_resets_sequence_relative_to_day_performed(self) -> None:
        self.service.complete_day(self.pid, 0, "2024-01-01T09:00:00", 1800)
        self.assertEqual(self._pointer(), 1)
        self.service.complete_day(self.pid, 0, "2024-01-02T09:00:00", 1700)
        self.assertEqual(self._pointer(), 1)

    def test_current_day_follows_completions(self) -> None:
        self.service.add_day(self.pid, "Arms")
        names = []
        for i in range(6):
            day = self.service.get_current_day(self.pid)
            names.append(day["name"])
            self.service.complete_day(self.pid, day["day_index"], None, 60)
        self.assertEqual(names, ["Upper", "Lower", "Arms"] * 2)
        self.assertEqual(self._pointer(), 0)

    def test_select_day_has_no_side_effects(self) -> None:
        before = self.service.programs.get_program(self.pid)
        for index in (1, 0, 1):
            self.service.select_day(self.pid, index)
        after = self.service.programs.get_program(self.pid)
        self.assertEqual(before, after)
        self.assertEqual(self.service.history_log.count(self.pid), 0)

    def test_invalid_day_index(self) -> None:
        with self.assertRaises(InvalidDayIndex):
            self.service.select_day(self.pid, 2)
        with self.assertRaises(InvalidDayIndex):
            self.service.complete_day(self.pid, 5, "2024-01-01T09:00:00", 60)
        self.assertEqual(self._pointer(), 0)
        self.assertEqual(self.service.history_log.count(self.pid), 0)

    def test_unknown_program(self) -> None:
        with self.assertRaises(ProgramNotFound):
            self.service.get_current_day(999)
        with self.assertRaises(ProgramNotFound):
            self.service.complete_day(999, 0)
        with self.assertRaises(ProgramNotFound):
            self.service.history(999)

    def test_zero_days(self) -> None:
        empty = self.service.create_program("Empty")
        with self.assertRaises(NoDaysDefined):
            self.service.get_current_day(empty)
        with self.assertRaises(NoDaysDefined):
            self.service.complete_day(empty, 0, "2024-01-01T09:00:00", 60)
        self.assertEqual(self.service.history_log.count(empty), 0)

    def test_negative_duration_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.service.complete_day(self.pid, 0, "2024-01-01T09:00:00", -5)
        self.assertEqual(self._pointer(), 0)

    def test_storage_failure_rolls_back(self) -> None:
        with mock.patch.object(
            self.service.programs,
            "update_current_day_index",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            with self.assertRaises(StorageError):
                self.service.complete_day(self.pid, 0, "2024-01-01T09:00:00", 60)
        self.assertEqual(self._pointer(), 0)
        self.assertEqual(self.service.history_log.count(self.pid), 0)

    def test_failing_pointer_write_keeps_history_empty(self) -> None:
        self.service.complete_day(self.pid, 0, "2024-01-01T09:00:00", 60)
        conn = sqlite3.connect(self.db_path)
        conn.execute(
            "CREATE TRIGGER fail_pointer BEFORE UPDATE OF current_day_index ON programs "
            "BEGIN SELECT RAISE(ABORT, 'simulated failure'); END;"
        )
        conn.commit()
        conn.close()
        with self.assertRaises(StorageError):
            self.service.complete_day(self.pid, 1, "2024-01-02T09:00:00", 60)
        self.assertEqual(self._pointer(), 1)
        self.assertEqual(self.service.history_log.count(self.pid), 1)

    def test_start_active_program(self) -> None:
        with self.assertRaises(ProgramNotFound):
            self.service.start_active_program()
        self.service.activate_program(self.pid)
        session = self.service.start_active_program()
        self.assertEqual(session["program"]["id"], self.pid)
        self.assertEqual(session["day"]["name"], "Upper")
        self.assertFalse(session["is_override"])

    def test_choose_day_marks_override(self) -> None:
        session = self.service.choose_day(self.pid, 1)
        self.assertTrue(session["is_override"])
        self.assertEqual(session["day"]["name"], "Lower")
        self.assertEqual(self._pointer(), 0)

    def test_activate_requires_days(self) -> None:
        empty = self.service.create_program("Empty")
        with self.assertRaises(NoDaysDefined):
            self.service.activate_program(empty)
        self.assertIsNone(self.service.programs.fetch_active())

    def test_single_active_program(self) -> None:
        other = self.service.create_program("Full Body", day_names=["A"])
        self.service.activate_program(self.pid)
        self.service.activate_program(other)
        active = [p["id"] for p in self.service.list_programs() if p["is_active"]]
        self.assertEqual(active, [other])
        self.assertEqual(self.service.programs.fetch_active()["id"], other)
        self.service.deactivate_program(other)
        self.assertIsNone(self.service.programs.fetch_active())

    def test_finish_day_records_personal_bests(self) -> None:
        self.service.finish_day(
            self.pid, 0, "2024-01-01T09:00:00", 3600, lifts=[("Bench Press", 5, 100.0)]
        )
        self.service.finish_day(
            self.pid, 1, "2024-01-03T09:00:00", 3600, lifts=[("Bench Press", 5, 95.0)]
        )
        hid = self.service.finish_day(
            self.pid, 0, "2024-01-05T09:00:00", 3600, lifts=[("Bench Press", 5, 105.0)]
        )
        records = self.service.records.fetch_for_exercise("Bench Press")
        self.assertEqual([r["weight"] for r in records], [105.0, 100.0])
        self.assertEqual(records[0]["program_history_id"], hid)
        self.assertEqual(self._pointer(), 1)

    def test_invalid_lift_leaves_day_uncompleted(self) -> None:
        for lift in (("Bench Press", 0, 100.0), ("Bench Press", 5, -1.0), (" ", 5, 100.0)):
            with self.assertRaises(ValueError):
                self.service.finish_day(
                    self.pid, 0, "2024-01-01T09:00:00", 3600, lifts=[lift]
                )
        self.assertEqual(self._pointer(), 0)
        self.assertEqual(self.service.history_log.count(self.pid), 0)
        self.assertEqual(self.service.records.fetch_records(), [])

    def test_failing_record_write_rolls_back_completion(self) -> None:
        with mock.patch.object(
            self.service.records,
            "add",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            with self.assertRaises(StorageError):
                self.service.finish_day(
                    self.pid,
                    0,
                    "2024-01-01T09:00:00",
                    3600,
                    lifts=[("Bench Press", 5, 100.0)],
                )
        self.assertEqual(self._pointer(), 0)
        self.assertEqual(self.service.history_log.count(self.pid), 0)

    def test_choose_day_wraps_storage_errors(self) -> None:
        with mock.patch.object(
            self.service.programs,
            "get_program",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            with self.assertRaises(StorageError):
                self.service.choose_day(self.pid, 1)

    def test_delete_program_cascades(self) -> None:
        day = self.service.get_current_day(self.pid)
        self.service.add_exercise(day["id"], "Bench Press")
        self.service.complete_day(self.pid, 0, "2024-01-01T09:00:00", 60)
        self.service.delete_program(self.pid)
        self.assertEqual(self.service.days.count(self.pid), 0)
        self.assertEqual(self.service.history_log.count(self.pid), 0)
        self.assertEqual(self.service.exercises.fetch_for_day(day["id"]), [])
        with self.assertRaises(ProgramNotFound):
            self.service.program_detail(self.pid)

    def test_clone_program(self) -> None:
        upper = self.service.select_day(self.pid, 0)
        self.service.add_exercise(upper["id"], "Bench Press", target_reps="8-6-4")
        clone = self.service.clone_program(self.pid, "Upper/Lower copy")
        detail = self.service.program_detail(clone)
        self.assertEqual([d["name"] for d in detail["days"]], ["Upper", "Lower"])
        self.assertEqual(detail["days"][0]["exercises"][0]["target_reps"], "8-6-4")
        self.assertFalse(detail["is_active"])
        self.assertEqual(detail["current_day_index"], 0)


def test_rename_program(tmp_path):
    service = make_service(str(tmp_path / "rename.db"))
    pid = service.create_program("Old")
    service.rename_program(pid, "New", "desc")
    program = service.program_detail(pid)
    assert program["name"] == "New"
    assert program["description"] == "desc"
    with pytest.raises(ValueError):
        service.rename_program(pid, "  ")


def test_history_filters_by_date(tmp_path):
    service = make_service(str(tmp_path / "history.db"))
    pid = service.create_program("Split", day_names=["A", "B"])
    service.complete_day(pid, 0, "2024-01-01T09:00:00", 60)
    service.complete_day(pid, 1, "2024-01-02T23:30:00", 60)
    service.complete_day(pid, 0, "2024-01-03T07:00:00", 60)
    rows = service.history(pid, "2024-01-02", "2024-01-02")
    assert [r["day_name"] for r in rows] == ["B"]
    rows = service.history(None, "2024-01-02")
    assert len(rows) == 2
