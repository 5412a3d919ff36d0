from __future__ import annotations

import logging

from db import TemplateRepository
from program_service import storage_errors

logger = logging.getLogger(__name__)

NAME_LENGTH = (2, 50)
SETS_RANGE = (1, 20)
REPS_RANGE = (1, 100)


def _check_name(value: str | None, label: str) -> str:
    text = (value or "").strip()
    low, high = NAME_LENGTH
    if not low <= len(text) <= high:
        raise ValueError(f"{label} must be {low}-{high} characters")
    return text


def _check_range(value, bounds: tuple[int, int], label: str) -> None:
    if value is None:
        return
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"{label} must be between {low} and {high}")


class TemplateService:
    """Validated create, update and delete of workout templates."""

    def __init__(self, template_repo: TemplateRepository) -> None:
        self.templates = template_repo

    @staticmethod
    def clean_exercises(exercises: list[dict] | None) -> list[dict]:
        """Validate template exercises and return them with trimmed names.

        Targets are optional; when present sets must be 1-20, reps 1-100
        and weight non-negative.
        """
        cleaned = []
        for ex in exercises or []:
            _check_range(ex.get("target_sets"), SETS_RANGE, "target_sets")
            _check_range(ex.get("target_reps"), REPS_RANGE, "target_reps")
            weight = ex.get("target_weight")
            if weight is not None and weight < 0:
                raise ValueError("target_weight must be non-negative")
            cleaned.append(
                {
                    "exercise_name": _check_name(
                        ex.get("exercise_name"), "exercise_name"
                    ),
                    "target_sets": ex.get("target_sets"),
                    "target_reps": ex.get("target_reps"),
                    "target_weight": weight,
                    "notes": ex.get("notes") or None,
                }
            )
        return cleaned

    def create_template(
        self,
        name: str,
        description: str | None = None,
        exercises: list[dict] | None = None,
    ) -> int:
        name = _check_name(name, "name")
        cleaned = self.clean_exercises(exercises)
        with storage_errors("creating template"):
            template_id = self.templates.create(name, description, cleaned)
        logger.info("created template %s (%s)", template_id, name)
        return template_id

    def list_templates(self) -> list[dict]:
        with storage_errors("listing templates"):
            return self.templates.fetch_all()

    def template_detail(self, template_id: int) -> dict:
        with storage_errors("loading template"):
            return self.templates.fetch_detail(template_id)

    def update_template(
        self,
        template_id: int,
        name: str | None = None,
        description: str | None = None,
        exercises: list[dict] | None = None,
    ) -> None:
        if name is not None:
            name = _check_name(name, "name")
        cleaned = self.clean_exercises(exercises) if exercises is not None else None
        with storage_errors("updating template"):
            self.templates.update(template_id, name, description, cleaned)

    def delete_template(self, template_id: int) -> None:
        with storage_errors("deleting template"):
            self.templates.delete(template_id)
        logger.info("deleted template %s", template_id)
