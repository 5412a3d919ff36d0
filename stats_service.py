from __future__ import annotations

import calendar
import datetime
from typing import Iterable, Optional

import pytz

from algorithms import WeightConverter, format_clock, format_duration
from db import (
    PersonalRecordRepository,
    ProgramHistoryRepository,
    ProgramRepository,
    SettingsRepository,
    WorkoutSessionRepository,
)

MIN_YEAR = 1
# date views query up to a day past their range
MAX_YEAR = 9998


def _as_date(value: datetime.date | str) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(value[:10])


def to_local(
    performed_at: datetime.datetime | str, tz: str | None = None
) -> datetime.datetime:
    """Return a stored timestamp as wall-clock time in ``tz``.

    Naive timestamps are already local and are returned unchanged. Aware
    ones are converted to ``tz``, or to the system zone when ``tz`` is None.
    """
    if isinstance(performed_at, str):
        performed_at = datetime.datetime.fromisoformat(performed_at)
    if performed_at.tzinfo is None:
        return performed_at
    if tz is None:
        return performed_at.astimezone()
    return performed_at.astimezone(pytz.timezone(tz))


def local_date(
    performed_at: datetime.datetime | str, tz: str | None = None
) -> datetime.date:
    """Return the local calendar date of a stored timestamp."""
    return to_local(performed_at, tz).date()


class StatisticsService:
    """Calendar, personal record and exercise views over the logged training."""

    def __init__(
        self,
        history_repo: ProgramHistoryRepository,
        record_repo: PersonalRecordRepository | None = None,
        settings_repo: SettingsRepository | None = None,
        program_repo: ProgramRepository | None = None,
        session_repo: WorkoutSessionRepository | None = None,
    ) -> None:
        self.history = history_repo
        self.records = record_repo
        self.settings = settings_repo
        self.programs = program_repo
        self.sessions = session_repo

    @staticmethod
    def group_by_date(
        records: Iterable[dict],
        start: datetime.date | str | None = None,
        end: datetime.date | str | None = None,
        tz: str | None = None,
    ) -> dict[datetime.date, dict]:
        """Bucket history records per local calendar day.

        ``start`` and ``end`` are inclusive dates. Ids keep the order in
        which ``records`` were supplied. Aware timestamps are bucketed by
        their date in ``tz``.
        """
        first = _as_date(start) if start is not None else None
        last = _as_date(end) if end is not None else None
        buckets: dict[datetime.date, dict] = {}
        for rec in records:
            day = local_date(rec["performed_at"], tz)
            if first is not None and day < first:
                continue
            if last is not None and day > last:
                continue
            bucket = buckets.setdefault(
                day, {"date": day.isoformat(), "workout_count": 0, "ids": []}
            )
            bucket["workout_count"] += 1
            bucket["ids"].append(rec["id"])
        return dict(sorted(buckets.items()))

    @staticmethod
    def month_range(year: int, month: int) -> tuple[datetime.date, datetime.date]:
        """Return the first and last day of ``month``."""
        if not MIN_YEAR <= year <= MAX_YEAR:
            raise ValueError(f"year must be {MIN_YEAR}-{MAX_YEAR}")
        if not 1 <= month <= 12:
            raise ValueError("month must be 1-12")
        last_day = calendar.monthrange(year, month)[1]
        return datetime.date(year, month, 1), datetime.date(year, month, last_day)

    def _setting(self, key: str, default: str) -> str:
        if self.settings is None:
            return default
        return self.settings.get_text(key, default)

    def _timezone(self) -> str | None:
        if self.settings is None:
            return None
        return self.settings.get_text("timezone", "UTC")

    def _history_around(
        self, first: datetime.date, last: datetime.date, program_id: Optional[int]
    ) -> list[dict]:
        # widen by a day on each side so aware timestamps near midnight
        # are bucketed by their local date rather than the stored text
        one_day = datetime.timedelta(days=1)
        lower = first - one_day if first > datetime.date.min else first
        upper = last + one_day if last < datetime.date.max else last
        return self.history.query_history(
            program_id, lower.isoformat(), upper.isoformat()
        )

    def month_calendar(
        self, year: int, month: int, program_id: Optional[int] = None
    ) -> dict[datetime.date, dict]:
        first, last = self.month_range(year, month)
        records = self._history_around(first, last, program_id)
        return self.group_by_date(records, first, last, self._timezone())

    def month_grid(
        self, year: int, month: int, program_id: Optional[int] = None
    ) -> list[list[dict]]:
        """Return the month as full weeks starting on the configured weekday.

        Days outside ``month`` pad the first and last week and carry
        ``in_month`` False.
        """
        first_weekday = (
            calendar.SUNDAY
            if self._setting("week_start", "monday") == "sunday"
            else calendar.MONDAY
        )
        buckets = self.month_calendar(year, month, program_id)
        weeks = calendar.Calendar(first_weekday).monthdatescalendar(year, month)
        return [
            [
                {
                    "date": day.isoformat(),
                    "in_month": day.month == month,
                    "workout_count": (
                        buckets[day]["workout_count"] if day in buckets else 0
                    ),
                }
                for day in week
            ]
            for week in weeks
        ]

    def workouts_for_date(
        self, day: datetime.date | str, program_id: Optional[int] = None
    ) -> list[dict]:
        """History rows performed on ``day`` with a display ``time``."""
        target = _as_date(day)
        if not MIN_YEAR <= target.year <= MAX_YEAR:
            raise ValueError(f"year must be {MIN_YEAR}-{MAX_YEAR}")
        tz = self._timezone()
        time_format = self._setting("time_format", "24h")
        result = []
        for rec in self._history_around(target, target, program_id):
            when = to_local(rec["performed_at"], tz)
            if when.date() != target:
                continue
            item = dict(rec)
            item["time"] = format_clock(when, time_format)
            result.append(item)
        return result

    @staticmethod
    def group_by_exercise(
        records: Iterable[dict], order: str = "reps"
    ) -> dict[str, list[dict]]:
        """Group personal records by exercise name.

        ``order="reps"`` sorts each group by rep count ascending with the
        heaviest lift first inside a rep count; ``order="date"`` sorts by
        ``achieved_at``.
        """
        if order not in ("reps", "date"):
            raise ValueError(f"unknown order: {order}")
        groups: dict[str, list[dict]] = {}
        for rec in records:
            groups.setdefault(rec["exercise_name"], []).append(rec)
        for name, items in groups.items():
            if order == "reps":
                items.sort(key=lambda r: (r["reps"], -r["weight"]))
            else:
                items.sort(key=lambda r: r["achieved_at"])
        return dict(sorted(groups.items()))

    def _weight_unit(self, unit: str | None) -> str:
        if unit is not None:
            return unit
        return self._setting("weight_unit", "kg")

    def personal_record_history(
        self, unit: str | None = None, order: str = "reps"
    ) -> dict[str, list[dict]]:
        if self.records is None:
            return {}
        unit = self._weight_unit(unit)
        converted = []
        for rec in self.records.fetch_records():
            item = dict(rec)
            item["weight"] = WeightConverter.to_display(rec["weight"], unit)
            item["unit"] = unit
            converted.append(item)
        return self.group_by_exercise(converted, order)

    def exercise_performance_history(
        self, exercise_name: str, unit: str | None = None
    ) -> list[dict]:
        """Per-workout totals for ``exercise_name``, newest workout first."""
        if self.sessions is None:
            return []
        unit = self._weight_unit(unit)
        history = []
        for entry in self.sessions.exercise_history(exercise_name):
            item = dict(entry)
            item["total_volume"] = WeightConverter.to_display(entry["total_volume"], unit)
            item["max_weight"] = WeightConverter.to_display(entry["max_weight"], unit)
            item["unit"] = unit
            history.append(item)
        return history

    def exercise_statistics(
        self, exercise_name: str, unit: str | None = None
    ) -> dict:
        """Lifetime totals for one exercise over finished workouts."""
        history = self.exercise_performance_history(exercise_name, unit)
        workouts = len(history)
        volume = sum(h["total_volume"] for h in history)
        sets = sum(h["completed_sets"] for h in history)
        return {
            "exercise_name": exercise_name,
            "unit": self._weight_unit(unit),
            "total_workouts": workouts,
            "total_volume": round(volume, 1),
            "total_sets": sets,
            "total_reps": sum(h["total_reps"] for h in history),
            "max_weight": max((h["max_weight"] for h in history), default=0.0),
            "average_volume": round(volume / workouts, 1) if workouts else 0.0,
            "average_sets": round(sets / workouts, 1) if workouts else 0.0,
            "last_performed": history[0]["started_at"] if history else None,
        }

    def program_summary(self, program_id: int) -> dict:
        """Completion totals for a program."""
        if self.programs is not None:
            self.programs.get_program(program_id)
        records = self.history.query_history(program_id)
        durations = [
            r["duration_seconds"] for r in records if r["duration_seconds"] is not None
        ]
        total = sum(durations)
        average = total / len(durations) if durations else 0.0
        return {
            "program_id": program_id,
            "completions": len(records),
            "total_duration": total,
            "average_duration": round(average, 1),
            "total_duration_text": format_duration(total),
            "last_performed": records[-1]["performed_at"] if records else None,
            "days": [
                {"program_day_id": day_id, "name": name, "count": count}
                for day_id, name, count in self.history.day_counts(program_id)
            ],
        }
