import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import TemplateRepository
from template_service import TemplateService


@pytest.fixture
def service(tmp_path):
    return TemplateService(TemplateRepository(str(tmp_path / "templates.db")))


def test_create_and_fetch_template(service):
    tid = service.create_template(
        "  Push Day ",
        "chest focus",
        [
            {"exercise_name": "Bench Press", "target_sets": 4, "target_reps": 8},
            {"exercise_name": "Dips", "notes": "bodyweight"},
        ],
    )
    detail = service.template_detail(tid)
    assert detail["name"] == "Push Day"
    assert [e["exercise_name"] for e in detail["exercises"]] == ["Bench Press", "Dips"]
    assert [e["position"] for e in detail["exercises"]] == [0, 1]
    assert detail["exercises"][0]["target_sets"] == 4
    assert detail["exercises"][1]["notes"] == "bodyweight"
    assert detail["last_used"] is None


@pytest.mark.parametrize(
    "name, exercises",
    [
        ("A", []),
        ("x" * 51, []),
        ("Legs", [{"exercise_name": "S"}]),
        ("Legs", [{"exercise_name": "Squat", "target_sets": 0}]),
        ("Legs", [{"exercise_name": "Squat", "target_sets": 21}]),
        ("Legs", [{"exercise_name": "Squat", "target_reps": 101}]),
        ("Legs", [{"exercise_name": "Squat", "target_weight": -5}]),
    ],
)
def test_invalid_templates_rejected(service, name, exercises):
    with pytest.raises(ValueError):
        service.create_template(name, exercises=exercises)
    assert service.list_templates() == []


def test_update_replaces_exercises(service):
    tid = service.create_template(
        "Pull Day", exercises=[{"exercise_name": "Row"}, {"exercise_name": "Curl"}]
    )
    service.update_template(tid, exercises=[{"exercise_name": "Chin Up"}])
    detail = service.template_detail(tid)
    assert detail["name"] == "Pull Day"
    assert [e["exercise_name"] for e in detail["exercises"]] == ["Chin Up"]

    service.update_template(tid, name="Back Day")
    detail = service.template_detail(tid)
    assert detail["name"] == "Back Day"
    assert len(detail["exercises"]) == 1

    with pytest.raises(ValueError):
        service.update_template(tid, name=" ")
    with pytest.raises(ValueError, match="not found"):
        service.update_template(99, name="Other")


def test_list_orders_recently_used_first(service):
    first = service.create_template("Alpha")
    second = service.create_template("Beta")
    service.create_template("Gamma")
    service.templates.update_last_used(second, "2024-01-02T09:00:00")
    service.templates.update_last_used(first, "2024-01-01T09:00:00")
    names = [t["name"] for t in service.list_templates()]
    assert names == ["Beta", "Alpha", "Gamma"]


def test_delete_template(service):
    tid = service.create_template("Legs", exercises=[{"exercise_name": "Squat"}])
    service.delete_template(tid)
    assert service.list_templates() == []
    with pytest.raises(ValueError, match="not found"):
        service.delete_template(tid)
