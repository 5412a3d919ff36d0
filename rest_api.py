import datetime
import logging
from typing import List, Dict

from fastapi import FastAPI, HTTPException, Body, APIRouter

from config import APP_VERSION, setup_logging
from db import (
    ProgramRepository,
    ProgramDayRepository,
    ProgramDayExerciseRepository,
    ProgramHistoryRepository,
    PersonalRecordRepository,
    SettingsRepository,
    TemplateRepository,
    WorkoutSessionRepository,
    SessionExerciseRepository,
    SessionSetRepository,
)
from exceptions import InvalidDayIndex, NoDaysDefined, ProgramNotFound, StorageError
from history_recorder import HistoryRecorder
from program_service import ProgramService
from stats_service import StatisticsService
from template_service import TemplateService
from workout_service import WorkoutService
from algorithms import WeightConverter

logger = logging.getLogger(__name__)


def http_error(exc: Exception) -> HTTPException:
    """Map a domain error onto the HTTP status the UI expects."""
    if isinstance(exc, ProgramNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, NoDaysDefined):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StorageError):
        logger.error("storage error: %s", exc)
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, InvalidDayIndex):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ValueError) and "not found" in str(exc):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _parse_order(order: str) -> list[int]:
    try:
        return [int(i) for i in order.split(",") if i]
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="invalid order parameter; expected comma-separated ids",
        )


class ProgramAPI:
    """Provides REST endpoints for training programs."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
    ) -> None:
        self.settings = SettingsRepository(db_path, yaml_path)
        self.db_path = self.settings.db_path
        self.programs = ProgramRepository(self.db_path)
        self.days = ProgramDayRepository(self.db_path)
        self.day_exercises = ProgramDayExerciseRepository(self.db_path)
        self.history = ProgramHistoryRepository(self.db_path)
        self.records = PersonalRecordRepository(self.db_path)
        self.recorder = HistoryRecorder(self.history)
        self.service = ProgramService(
            self.programs,
            self.days,
            self.day_exercises,
            self.history,
            recorder=self.recorder,
            record_repo=self.records,
        )
        self.templates = TemplateRepository(self.db_path)
        self.sessions = WorkoutSessionRepository(self.db_path)
        self.session_exercises = SessionExerciseRepository(self.db_path)
        self.session_sets = SessionSetRepository(self.db_path)
        self.template_service = TemplateService(self.templates)
        self.workouts = WorkoutService(
            self.sessions,
            self.session_exercises,
            self.session_sets,
            template_repo=self.templates,
            record_repo=self.records,
            program_service=self.service,
            settings_repo=self.settings,
        )
        self.statistics = StatisticsService(
            self.history,
            self.records,
            self.settings,
            self.programs,
            self.sessions,
        )
        self.app = FastAPI(
            title="Program API",
            description="REST API for multi-day training programs",
            version=APP_VERSION,
        )
        self._setup_routes()

    def _setup_routes(self) -> None:
        programs_router = APIRouter(prefix="/programs", tags=["Programs"])
        days_router = APIRouter(prefix="/days", tags=["Days"])
        calendar_router = APIRouter(prefix="/calendar", tags=["Calendar"])
        templates_router = APIRouter(prefix="/templates", tags=["Templates"])
        workouts_router = APIRouter(prefix="/workouts", tags=["Workouts"])

        @self.app.get("/health")
        def health():
            return {"status": "ok", "version": APP_VERSION}

        @programs_router.post("")
        def create_program(name: str, description: str | None = None):
            try:
                pid = self.service.create_program(name, description)
            except ValueError as e:
                raise http_error(e)
            return {"id": pid}

        @programs_router.get("")
        def list_programs():
            return self.service.list_programs()

        @programs_router.get("/active")
        def get_active_program():
            program = self.programs.fetch_active()
            if program is None:
                raise HTTPException(status_code=404, detail="no active program")
            return program

        @programs_router.post("/active/start")
        def start_active_program():
            try:
                return self.service.start_active_program()
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @programs_router.get("/{program_id}")
        def get_program(program_id: int):
            try:
                return self.service.program_detail(program_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @programs_router.put("/{program_id}")
        def update_program(
            program_id: int,
            name: str | None = None,
            description: str | None = None,
        ):
            try:
                self.service.rename_program(program_id, name, description)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @programs_router.delete("/{program_id}")
        def delete_program(program_id: int):
            try:
                self.service.delete_program(program_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @programs_router.post("/{program_id}/activate")
        def activate_program(program_id: int):
            try:
                self.service.activate_program(program_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "active"}

        @programs_router.post("/{program_id}/deactivate")
        def deactivate_program(program_id: int):
            try:
                self.service.deactivate_program(program_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "inactive"}

        @programs_router.post("/{program_id}/clone")
        def clone_program(program_id: int, name: str):
            try:
                new_id = self.service.clone_program(program_id, name)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": new_id}

        @programs_router.get("/{program_id}/summary")
        def program_summary(program_id: int):
            try:
                return self.statistics.program_summary(program_id)
            except ValueError as e:
                raise http_error(e)

        @programs_router.post("/{program_id}/days")
        def add_day(program_id: int, name: str, weekday: str | None = None):
            try:
                day_id = self.service.add_day(program_id, name, weekday)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": day_id}

        @programs_router.get("/{program_id}/days")
        def list_days(program_id: int):
            try:
                self.programs.get_program(program_id)
            except ValueError as e:
                raise http_error(e)
            return self.days.list_days(program_id)

        @programs_router.put("/{program_id}/days/order")
        def reorder_days(program_id: int, order: str):
            ids = _parse_order(order)
            try:
                self.service.reorder_days(program_id, ids)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @programs_router.get("/{program_id}/current_day")
        def current_day(program_id: int):
            try:
                return self.service.get_current_day(program_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @programs_router.get("/{program_id}/days/{day_index}")
        def select_day(program_id: int, day_index: int):
            try:
                return self.service.select_day(program_id, day_index)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @programs_router.post("/{program_id}/days/{day_index}/choose")
        def choose_day(program_id: int, day_index: int):
            try:
                return self.service.choose_day(program_id, day_index)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @programs_router.post("/{program_id}/days/{day_index}/complete")
        def complete_day(
            program_id: int,
            day_index: int,
            performed_at: str | None = None,
            duration_seconds: int | None = None,
            lifts: List[Dict] = Body(None),
        ):
            try:
                entries = [
                    (
                        lift["exercise_name"],
                        int(lift["reps"]),
                        WeightConverter.from_display(
                            float(lift["weight"]), lift.get("unit", "kg")
                        ),
                    )
                    for lift in lifts or []
                ]
            except (KeyError, TypeError, ValueError) as e:
                raise HTTPException(status_code=400, detail=f"invalid lift: {e}")
            try:
                hid = self.service.finish_day(
                    program_id,
                    day_index,
                    performed_at or datetime.datetime.now().isoformat(timespec="seconds"),
                    duration_seconds,
                    lifts=entries,
                )
                program = self.service.program_detail(program_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": hid, "current_day_index": program["current_day_index"]}

        @days_router.get("/{day_id}")
        def get_day(day_id: int):
            try:
                return self.days.fetch_detail(day_id)
            except ValueError as e:
                raise http_error(e)

        @days_router.put("/{day_id}")
        def update_day(day_id: int, name: str | None = None, weekday: str | None = None):
            try:
                self.service.rename_day(day_id, name, weekday)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @days_router.delete("/{day_id}")
        def delete_day(day_id: int):
            try:
                day = self.days.fetch_detail(day_id)
                pointer = self.service.remove_day(day["program_id"], day_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted", "current_day_index": pointer}

        @days_router.post("/{day_id}/exercises")
        def add_day_exercise(
            day_id: int,
            exercise_name: str,
            target_sets: int = 3,
            target_reps: str = "10",
            rest_seconds: int = 90,
            rpe: float | None = None,
            target_weight: float | None = None,
            notes: str | None = None,
        ):
            try:
                ex_id = self.service.add_exercise(
                    day_id,
                    exercise_name,
                    target_sets=target_sets,
                    target_reps=target_reps,
                    rest_seconds=rest_seconds,
                    rpe=rpe,
                    target_weight=target_weight,
                    notes=notes,
                )
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": ex_id}

        @days_router.get("/{day_id}/exercises")
        def list_day_exercises(day_id: int):
            return self.day_exercises.fetch_for_day(day_id)

        @days_router.put("/{day_id}/exercises/order")
        def reorder_day_exercises(day_id: int, order: str):
            ids = _parse_order(order)
            try:
                self.service.reorder_exercises(day_id, ids)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @self.app.put("/day_exercises/{exercise_id}")
        def update_day_exercise(
            exercise_id: int,
            exercise_name: str | None = None,
            target_sets: int | None = None,
            target_reps: str | None = None,
            rest_seconds: int | None = None,
            rpe: float | None = None,
            target_weight: float | None = None,
            notes: str | None = None,
        ):
            try:
                self.service.update_exercise(
                    exercise_id,
                    exercise_name=exercise_name,
                    target_sets=target_sets,
                    target_reps=target_reps,
                    rest_seconds=rest_seconds,
                    rpe=rpe,
                    target_weight=target_weight,
                    notes=notes,
                )
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @self.app.delete("/day_exercises/{exercise_id}")
        def delete_day_exercise(exercise_id: int):
            try:
                self.service.remove_exercise(exercise_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @self.app.get("/history")
        def list_history(
            program_id: int | None = None,
            start_date: str | None = None,
            end_date: str | None = None,
        ):
            try:
                return self.service.history(program_id, start_date, end_date)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @calendar_router.get("/day/{date}")
        def workouts_for_date(date: str, program_id: int | None = None):
            try:
                return self.statistics.workouts_for_date(date, program_id)
            except ValueError:
                raise HTTPException(
                    status_code=400, detail="date must be in YYYY-MM-DD format"
                )

        @calendar_router.get("/{year}/{month}")
        def month_calendar(year: int, month: int, program_id: int | None = None):
            try:
                data = self.statistics.month_calendar(year, month, program_id)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return [bucket for bucket in data.values()]

        @calendar_router.get("/{year}/{month}/grid")
        def month_grid(year: int, month: int, program_id: int | None = None):
            try:
                return self.statistics.month_grid(year, month, program_id)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/personal_records")
        def personal_records(unit: str | None = None, order: str = "reps"):
            try:
                return self.statistics.personal_record_history(unit, order)
            except ValueError as e:
                raise http_error(e)

        @self.app.post("/personal_records")
        def add_personal_record(
            exercise_name: str,
            reps: int,
            weight: float,
            unit: str = "kg",
            achieved_at: str | None = None,
        ):
            try:
                weight_kg = WeightConverter.from_display(weight, unit)
                rid = self.records.record_if_best(
                    exercise_name,
                    reps,
                    weight_kg,
                    achieved_at or datetime.datetime.now().isoformat(timespec="seconds"),
                )
            except ValueError as e:
                raise http_error(e)
            return {"id": rid, "new_record": rid is not None}

        @templates_router.post("")
        def create_template(
            name: str,
            description: str | None = None,
            exercises: List[Dict] = Body(None),
        ):
            try:
                tid = self.template_service.create_template(name, description, exercises)
            except (ValueError, TypeError, StorageError) as e:
                raise http_error(e)
            return {"id": tid}

        @templates_router.get("")
        def list_templates():
            return self.template_service.list_templates()

        @templates_router.get("/{template_id}")
        def get_template(template_id: int):
            try:
                return self.template_service.template_detail(template_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @templates_router.put("/{template_id}")
        def update_template(
            template_id: int,
            name: str | None = None,
            description: str | None = None,
            exercises: List[Dict] = Body(None),
        ):
            try:
                self.template_service.update_template(
                    template_id, name, description, exercises
                )
            except (ValueError, TypeError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @templates_router.delete("/{template_id}")
        def delete_template(template_id: int):
            try:
                self.template_service.delete_template(template_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @templates_router.post("/{template_id}/start")
        def start_template_workout(template_id: int):
            try:
                wid = self.workouts.start_workout_from_template(template_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": wid}

        @workouts_router.post("")
        def start_empty_workout(name: str = "Workout"):
            try:
                wid = self.workouts.start_empty_workout(name)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": wid}

        @workouts_router.get("/active")
        def active_workout():
            workout = self.workouts.active_workout()
            if workout is None:
                raise HTTPException(status_code=404, detail="no active workout")
            return workout

        @workouts_router.get("/history")
        def workout_history(limit: int | None = None, unit: str | None = None):
            try:
                return self.workouts.workout_history(limit, unit)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @programs_router.post("/{program_id}/days/{day_index}/start")
        def start_program_day_workout(program_id: int, day_index: int):
            try:
                wid = self.workouts.start_workout_from_program_day(program_id, day_index)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": wid}

        @workouts_router.get("/{workout_id}")
        def get_workout(workout_id: int):
            try:
                return self.workouts.workout_detail(workout_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @workouts_router.delete("/{workout_id}")
        def delete_workout(workout_id: int):
            try:
                self.workouts.delete_workout(workout_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @workouts_router.post("/{workout_id}/exercises")
        def add_workout_exercise(
            workout_id: int, exercise_name: str, notes: str | None = None
        ):
            try:
                ex_id = self.workouts.add_exercise(workout_id, exercise_name, notes)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": ex_id}

        @workouts_router.get("/{workout_id}/records")
        def workout_records(workout_id: int):
            try:
                return self.workouts.detect_records(workout_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @workouts_router.post("/{workout_id}/finish")
        def finish_workout(workout_id: int, finished_at: str | None = None):
            try:
                return self.workouts.finish_workout(workout_id, finished_at)
            except (ValueError, StorageError) as e:
                raise http_error(e)

        @self.app.delete("/workout_exercises/{exercise_id}")
        def remove_workout_exercise(exercise_id: int):
            try:
                self.workouts.remove_exercise(exercise_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @self.app.post("/workout_exercises/{exercise_id}/sets")
        def log_set(
            exercise_id: int,
            reps: int,
            weight: float,
            unit: str = "kg",
            rpe: float | None = None,
            completed: bool = False,
        ):
            try:
                weight_kg = WeightConverter.from_display(weight, unit)
                set_id = self.workouts.log_set(
                    exercise_id, reps, weight_kg, rpe, completed
                )
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"id": set_id}

        @self.app.put("/sets/{set_id}")
        def update_set(
            set_id: int,
            reps: int | None = None,
            weight: float | None = None,
            unit: str = "kg",
            rpe: float | None = None,
        ):
            try:
                if weight is not None:
                    weight = WeightConverter.from_display(weight, unit)
                self.workouts.update_set(set_id, reps, weight, rpe)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @self.app.post("/sets/{set_id}/complete")
        def complete_set(set_id: int, completed: bool = True):
            try:
                self.workouts.complete_set(set_id, completed)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "updated"}

        @self.app.delete("/sets/{set_id}")
        def delete_set(set_id: int):
            try:
                self.workouts.remove_set(set_id)
            except (ValueError, StorageError) as e:
                raise http_error(e)
            return {"status": "deleted"}

        @self.app.get("/exercises/{exercise_name}/history")
        def exercise_history(exercise_name: str, unit: str | None = None):
            try:
                return self.statistics.exercise_performance_history(exercise_name, unit)
            except ValueError as e:
                raise http_error(e)

        @self.app.get("/exercises/{exercise_name}/statistics")
        def exercise_statistics(exercise_name: str, unit: str | None = None):
            try:
                return self.statistics.exercise_statistics(exercise_name, unit)
            except ValueError as e:
                raise http_error(e)

        @self.app.get("/settings/general")
        def get_general_settings():
            return self.settings.all_settings()

        @self.app.post("/settings/general")
        def update_general_settings(
            weight_unit: str = None,
            time_format: str = None,
            timezone: str = None,
            log_level: str = None,
            week_start: str = None,
            show_weekday: bool = None,
        ):
            try:
                if weight_unit is not None:
                    self.settings.set_text("weight_unit", weight_unit)
                if time_format is not None:
                    self.settings.set_text("time_format", time_format)
                if timezone is not None:
                    self.settings.set_text("timezone", timezone)
                if log_level is not None:
                    self.settings.set_text("log_level", log_level)
                if week_start is not None:
                    self.settings.set_text("week_start", week_start)
                if show_weekday is not None:
                    self.settings.set_bool("show_weekday", show_weekday)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return {"status": "updated"}

        self.app.include_router(programs_router)
        self.app.include_router(days_router)
        self.app.include_router(calendar_router)
        self.app.include_router(templates_router)
        self.app.include_router(workouts_router)


api = ProgramAPI()
app = api.app

if __name__ == "__main__":
    import uvicorn

    setup_logging(api.settings.get_text("log_level", "INFO"))
    uvicorn.run(app)
