from __future__ import annotations

import datetime
import logging
from typing import Iterable

from algorithms import WeightConverter, format_clock, format_duration, format_elapsed
from db import (
    to_iso,
    WorkoutSessionRepository,
    SessionExerciseRepository,
    SessionSetRepository,
    TemplateRepository,
    PersonalRecordRepository,
    SettingsRepository,
)
from exceptions import InvalidDayIndex, NoDaysDefined
from program_service import ProgramService, storage_errors

logger = logging.getLogger(__name__)


def _parse(value: datetime.datetime | str) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(to_iso(value))


def _seconds_between(start: datetime.datetime, end: datetime.datetime) -> int:
    if (start.tzinfo is None) != (end.tzinfo is None):
        raise ValueError("timestamps must both be naive or both carry an offset")
    seconds = int((end - start).total_seconds())
    if seconds < 0:
        raise ValueError("workout cannot finish before it started")
    return seconds


class WorkoutService:
    """Logs workouts set by set and closes them out.

    Finishing a workout stores its personal records and, for workouts
    started from a program day, completes that day. Everything a finish
    writes commits in one transaction.
    """

    def __init__(
        self,
        session_repo: WorkoutSessionRepository,
        exercise_repo: SessionExerciseRepository,
        set_repo: SessionSetRepository,
        template_repo: TemplateRepository | None = None,
        record_repo: PersonalRecordRepository | None = None,
        program_service: ProgramService | None = None,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.sessions = session_repo
        self.exercises = exercise_repo
        self.sets = set_repo
        self.templates = template_repo
        self.records = record_repo
        self.programs = program_service
        self.settings = settings_repo

    def _setting(self, key: str, default: str) -> str:
        if self.settings is None:
            return default
        return self.settings.get_text(key, default)

    # -- starting ----------------------------------------------------------

    def _start(
        self,
        name: str,
        exercises: Iterable[dict],
        started_at: datetime.datetime | str | None,
        template_id: int | None = None,
        program_id: int | None = None,
        day_index: int | None = None,
    ) -> int:
        started = to_iso(started_at or datetime.datetime.now().replace(microsecond=0))
        with storage_errors("starting workout"):
            with self.sessions.transaction() as conn:
                if template_id is not None:
                    template = self.templates.fetch_detail(template_id, conn)
                    exercises = template["exercises"]
                    self.templates.update_last_used(template_id, started, conn)
                session_id = self.sessions.create(
                    name, started, template_id, program_id, day_index, conn
                )
                for ex in exercises:
                    self.exercises.add(
                        session_id, ex["exercise_name"], ex.get("notes"), conn
                    )
        logger.info("started workout %s (%s)", session_id, name)
        return session_id

    def start_empty_workout(
        self, name: str = "Workout", started_at: datetime.datetime | str | None = None
    ) -> int:
        return self._start(name, [], started_at)

    def start_workout_from_template(
        self, template_id: int, started_at: datetime.datetime | str | None = None
    ) -> int:
        """Start a workout holding the template's exercises, with no sets yet."""
        if self.templates is None:
            raise ValueError("templates are not available")
        with storage_errors("loading template"):
            template = self.templates.fetch_detail(template_id)
        return self._start(
            template["name"], [], started_at, template_id=template_id
        )

    def start_workout_from_program_day(
        self,
        program_id: int,
        day_index: int,
        started_at: datetime.datetime | str | None = None,
    ) -> int:
        """Start a workout for a program day; finishing it completes the day."""
        if self.programs is None:
            raise ValueError("programs are not available")
        chosen = self.programs.choose_day(program_id, day_index)
        name = f"{chosen['program']['name']} - {chosen['day']['name']}"
        return self._start(
            name,
            chosen["day"]["exercises"],
            started_at,
            program_id=program_id,
            day_index=day_index,
        )

    # -- logging -----------------------------------------------------------

    def add_exercise(
        self, session_id: int, exercise_name: str, notes: str | None = None
    ) -> int:
        with storage_errors("adding exercise"):
            return self.exercises.add(session_id, exercise_name, notes)

    def remove_exercise(self, exercise_id: int) -> None:
        with storage_errors("removing exercise"):
            self.exercises.remove(exercise_id)

    def log_set(
        self,
        exercise_id: int,
        reps: int,
        weight: float,
        rpe: float | None = None,
        completed: bool = False,
    ) -> int:
        completed_at = to_iso(datetime.datetime.now().replace(microsecond=0))
        with storage_errors("logging set"):
            return self.sets.add(exercise_id, reps, weight, rpe, completed, completed_at)

    def update_set(
        self,
        set_id: int,
        reps: int | None = None,
        weight: float | None = None,
        rpe: float | None = None,
    ) -> None:
        with storage_errors("updating set"):
            self.sets.update(set_id, reps, weight, rpe)

    def complete_set(self, set_id: int, completed: bool = True) -> None:
        timestamp = to_iso(datetime.datetime.now().replace(microsecond=0))
        with storage_errors("completing set"):
            self.sets.set_completed(set_id, completed, timestamp)

    def remove_set(self, set_id: int) -> None:
        with storage_errors("removing set"):
            self.sets.remove(set_id)

    def active_workout(self, now: datetime.datetime | None = None) -> dict | None:
        """Return the unfinished workout with its running clock, if any."""
        with storage_errors("loading active workout"):
            session = self.sessions.fetch_active()
            if session is None:
                return None
            detail = self.sessions.fetch_detail(session["id"])
        started = _parse(detail["started_at"])
        now = now or datetime.datetime.now(started.tzinfo)
        elapsed = max(0, int((now - started).total_seconds()))
        detail["elapsed_seconds"] = elapsed
        detail["elapsed_text"] = format_elapsed(elapsed)
        return detail

    # -- personal records --------------------------------------------------

    @staticmethod
    def best_sets(session: dict) -> list[tuple[str, int, float]]:
        """Heaviest completed set per exercise and rep count.

        Sets with no reps or no load cannot set a record.
        """
        best: dict[tuple[str, int], tuple[str, int, float]] = {}
        for ex in session["exercises"]:
            for s in ex["sets"]:
                if not s["completed"] or s["reps"] < 1 or s["weight"] <= 0:
                    continue
                key = (ex["exercise_name"].lower(), s["reps"])
                if key not in best or s["weight"] > best[key][2]:
                    best[key] = (ex["exercise_name"], s["reps"], s["weight"])
        return list(best.values())

    def _new_records(self, session: dict, conn=None) -> list[dict]:
        found = []
        for name, reps, weight in self.best_sets(session):
            previous = self.records.best_weight(name, reps, conn)
            if previous is None or weight > previous:
                found.append(
                    {
                        "exercise_name": name,
                        "reps": reps,
                        "weight": weight,
                        "previous_best": previous,
                    }
                )
        return found

    def detect_records(self, session_id: int) -> list[dict]:
        """List the records this workout would set, without storing them."""
        if self.records is None:
            return []
        with storage_errors("detecting records"):
            session = self.sessions.fetch_detail(session_id)
            return self._new_records(session)

    # -- finishing ---------------------------------------------------------

    def finish_workout(
        self, session_id: int, finished_at: datetime.datetime | str | None = None
    ) -> dict:
        """Close a workout, save its records and complete its program day."""
        with storage_errors("finishing workout"):
            with self.sessions.transaction() as conn:
                session = self.sessions.fetch_detail(session_id, conn)
                if session["finished_at"] is not None:
                    raise ValueError("workout already finished")
                started = _parse(session["started_at"])
                if finished_at is None:
                    finished = datetime.datetime.now(started.tzinfo).replace(microsecond=0)
                else:
                    finished = _parse(finished_at)
                duration = _seconds_between(started, finished)
                finished_text = to_iso(finished)

                history_id = None
                if session["program_id"] is not None and self.programs is not None:
                    try:
                        history_id = self.programs.complete_in(
                            conn,
                            session["program_id"],
                            session["day_index"],
                            session["started_at"],
                            duration,
                        )
                    except (InvalidDayIndex, NoDaysDefined) as e:
                        logger.warning(
                            "workout %s: program day no longer exists: %s",
                            session_id,
                            e,
                        )

                records = []
                if self.records is not None:
                    records = self._new_records(session, conn)
                    for rec in records:
                        self.records.add(
                            rec["exercise_name"],
                            rec["reps"],
                            rec["weight"],
                            finished_text,
                            history_id,
                            session_id,
                            conn,
                        )
                self.sessions.finish(
                    session_id, finished_text, duration, history_id, conn
                )
        logger.info(
            "finished workout %s after %s with %d new records",
            session_id,
            format_duration(duration),
            len(records),
        )
        return {
            "id": session_id,
            "duration_seconds": duration,
            "program_history_id": history_id,
            "records": records,
        }

    # -- history -----------------------------------------------------------

    @staticmethod
    def totals(session: dict) -> dict:
        """Exercise count plus completed set count and volume in kg."""
        done = [s for ex in session["exercises"] for s in ex["sets"] if s["completed"]]
        return {
            "exercise_count": len(session["exercises"]),
            "total_sets": len(done),
            "total_volume": sum(s["reps"] * s["weight"] for s in done),
        }

    def _summary(self, session: dict, unit: str, time_format: str) -> dict:
        totals = self.totals(session)
        template_name = None
        if session["template_id"] is not None and self.templates is not None:
            template_name = self.templates.fetch_detail(session["template_id"])["name"]
        return {
            "id": session["id"],
            "name": session["name"],
            "template_name": template_name,
            "program_history_id": session["program_history_id"],
            "started_at": session["started_at"],
            "finished_at": session["finished_at"],
            "time": format_clock(session["started_at"], time_format),
            "duration_seconds": session["duration_seconds"],
            "duration_text": format_duration(session["duration_seconds"] or 0),
            "exercise_count": totals["exercise_count"],
            "total_sets": totals["total_sets"],
            "total_volume": WeightConverter.to_display(totals["total_volume"], unit),
            "unit": unit,
        }

    def workout_history(
        self, limit: int | None = None, unit: str | None = None
    ) -> list[dict]:
        """Finished workouts, newest first, as display summaries."""
        if limit is not None and limit < 1:
            raise ValueError("limit must be positive")
        unit = unit or self._setting("weight_unit", "kg")
        time_format = self._setting("time_format", "24h")
        with storage_errors("loading workout history"):
            return [
                self._summary(self.sessions.fetch_detail(s["id"]), unit, time_format)
                for s in self.sessions.fetch_completed(limit)
            ]

    def workout_detail(self, session_id: int) -> dict:
        with storage_errors("loading workout"):
            detail = self.sessions.fetch_detail(session_id)
        detail.update(self.totals(detail))
        return detail

    def delete_workout(self, session_id: int) -> None:
        """Delete a workout; records it set stay with their link cleared."""
        with storage_errors("deleting workout"):
            self.sessions.delete(session_id)
        logger.info("deleted workout %s", session_id)
