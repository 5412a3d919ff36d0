import os
import sys
import unittest
from unittest import mock

import yaml
from fastapi.testclient import TestClient

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from exceptions import StorageError
from rest_api import ProgramAPI


class APITestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_programs.db"
        self.yaml_path = "test_settings.yaml"
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)
        self.api = ProgramAPI(db_path=self.db_path, yaml_path=self.yaml_path)
        self.client = TestClient(self.api.app)

    def tearDown(self) -> None:
        for path in (self.db_path, self.yaml_path):
            if os.path.exists(path):
                os.remove(path)

    def _program(self, *days: str) -> int:
        resp = self.client.post("/programs", params={"name": "Split"})
        pid = resp.json()["id"]
        for name in days:
            self.client.post(f"/programs/{pid}/days", params={"name": name})
        return pid

    def test_health(self) -> None:
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")

    def test_full_workflow(self) -> None:
        resp = self.client.post("/programs/active/start")
        self.assertEqual(resp.status_code, 404)

        resp = self.client.post(
            "/programs", params={"name": "Upper/Lower", "description": "4x week"}
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"id": 1})

        resp = self.client.post("/programs/1/activate")
        self.assertEqual(resp.status_code, 409)

        resp = self.client.post(
            "/programs/1/days", params={"name": "Upper", "weekday": "monday"}
        )
        self.assertEqual(resp.json(), {"id": 1})
        self.client.post("/programs/1/days", params={"name": "Lower"})
        resp = self.client.post(
            "/days/1/exercises",
            params={"exercise_name": "Bench Press", "target_reps": "8-6-4"},
        )
        self.assertEqual(resp.json(), {"id": 1})

        resp = self.client.post("/programs/1/activate")
        self.assertEqual(resp.status_code, 200)

        resp = self.client.post("/programs/active/start")
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["day"]["name"], "Upper")
        self.assertEqual(data["day"]["exercises"][0]["target_reps"], "8-6-4")
        self.assertFalse(data["is_override"])

        resp = self.client.post(
            "/programs/1/days/0/complete",
            params={"performed_at": "2024-01-01T09:00:00", "duration_seconds": 1800},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"id": 1, "current_day_index": 1})

        resp = self.client.get("/programs/1/current_day")
        self.assertEqual(resp.json()["name"], "Lower")

        resp = self.client.get("/history", params={"program_id": 1})
        self.assertEqual(len(resp.json()), 1)
        self.assertEqual(resp.json()[0]["day_name"], "Upper")

        resp = self.client.get("/programs/1/summary")
        self.assertEqual(resp.json()["completions"], 1)

    def test_choose_day_does_not_move_pointer(self) -> None:
        pid = self._program("A", "B", "C")
        resp = self.client.post(f"/programs/{pid}/days/2/choose")
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["is_override"])
        self.assertEqual(resp.json()["day"]["name"], "C")
        resp = self.client.get(f"/programs/{pid}")
        self.assertEqual(resp.json()["current_day_index"], 0)
        resp = self.client.post(f"/programs/{pid}/days/2/complete")
        self.assertEqual(resp.json()["current_day_index"], 0)

    def test_error_status_codes(self) -> None:
        pid = self._program("A", "B")
        empty = self._program()
        self.assertEqual(self.client.get("/programs/99").status_code, 404)
        self.assertEqual(self.client.get("/programs/99/current_day").status_code, 404)
        self.assertEqual(
            self.client.post("/programs/99/days/0/complete").status_code, 404
        )
        self.assertEqual(
            self.client.get(f"/programs/{empty}/current_day").status_code, 409
        )
        self.assertEqual(
            self.client.post(f"/programs/{pid}/days/5/complete").status_code, 400
        )
        self.assertEqual(
            self.client.get(f"/programs/{pid}/days/-1").status_code, 400
        )
        resp = self.client.post(
            f"/programs/{pid}/days/0/complete", params={"performed_at": "soon"}
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.client.get("/days/99").status_code, 404)

    def test_storage_error_maps_to_503(self) -> None:
        pid = self._program("A")
        with mock.patch.object(
            self.api.service, "finish_day", side_effect=StorageError("database is locked")
        ):
            resp = self.client.post(f"/programs/{pid}/days/0/complete")
        self.assertEqual(resp.status_code, 503)

    def test_complete_with_lifts_records_personal_bests(self) -> None:
        pid = self._program("A")
        resp = self.client.post(
            f"/programs/{pid}/days/0/complete",
            params={"performed_at": "2024-01-01T09:00:00"},
            json=[
                {"exercise_name": "Squat", "reps": 5, "weight": 100},
                {"exercise_name": "Bench Press", "reps": 5, "weight": 176.37, "unit": "lb"},
            ],
        )
        self.assertEqual(resp.status_code, 200)
        records = self.client.get("/personal_records").json()
        self.assertEqual(records["Squat"][0]["weight"], 100.0)
        self.assertEqual(records["Bench Press"][0]["weight"], 80.0)

        resp = self.client.post(
            f"/programs/{pid}/days/0/complete", json=[{"exercise_name": "Squat"}]
        )
        self.assertEqual(resp.status_code, 400)

    def test_rejected_lift_does_not_complete_day(self) -> None:
        pid = self._program("A", "B")
        for lift in (
            {"exercise_name": "Bench", "reps": 0, "weight": 100},
            {"exercise_name": "Bench", "reps": 5, "weight": -10},
            {"exercise_name": "", "reps": 5, "weight": 100},
        ):
            resp = self.client.post(f"/programs/{pid}/days/0/complete", json=[lift])
            self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.client.get("/history").json(), [])
        self.assertEqual(self.client.get(f"/programs/{pid}").json()["current_day_index"], 0)
        self.assertEqual(self.client.get("/personal_records").json(), {})

        resp = self.client.post(
            f"/programs/{pid}/days/0/complete",
            json=[{"exercise_name": "Bench", "reps": 5, "weight": 100}],
        )
        self.assertEqual(resp.json(), {"id": 1, "current_day_index": 1})
        self.assertEqual(len(self.client.get("/history").json()), 1)

    def test_day_management(self) -> None:
        pid = self._program("A", "B", "C")
        self.client.post(f"/programs/{pid}/days/1/complete")
        resp = self.client.delete("/days/1")
        self.assertEqual(resp.json(), {"status": "deleted", "current_day_index": 0})
        self.assertEqual(self.client.get(f"/programs/{pid}/current_day").json()["name"], "B")
        days = self.client.get(f"/programs/{pid}/days").json()
        self.assertEqual([d["name"] for d in days], ["B", "C"])
        self.assertEqual([d["day_index"] for d in days], [0, 1])

        resp = self.client.put(f"/programs/{pid}/days/order", params={"order": "3,2"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get(f"/programs/{pid}/current_day").json()["name"], "B")
        self.assertEqual(self.client.get(f"/programs/{pid}").json()["current_day_index"], 1)
        resp = self.client.put(f"/programs/{pid}/days/order", params={"order": "x"})
        self.assertEqual(resp.status_code, 400)

        resp = self.client.put("/days/2", params={"name": "B2", "weekday": "friday"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get("/days/2").json()["weekday"], "friday")
        resp = self.client.put("/days/2", params={"weekday": "someday"})
        self.assertEqual(resp.status_code, 400)

    def test_day_exercise_routes(self) -> None:
        self._program("A")
        first = self.client.post("/days/1/exercises", params={"exercise_name": "Squat"})
        second = self.client.post(
            "/days/1/exercises", params={"exercise_name": "Lunge", "rpe": 7}
        )
        ids = f"{second.json()['id']},{first.json()['id']}"
        self.client.put("/days/1/exercises/order", params={"order": ids})
        names = [e["exercise_name"] for e in self.client.get("/days/1/exercises").json()]
        self.assertEqual(names, ["Lunge", "Squat"])
        resp = self.client.put(
            f"/day_exercises/{first.json()['id']}", params={"target_sets": 5}
        )
        self.assertEqual(resp.status_code, 200)
        resp = self.client.delete(f"/day_exercises/{second.json()['id']}")
        self.assertEqual(resp.json(), {"status": "deleted"})
        self.assertEqual(self.client.delete("/day_exercises/99").status_code, 404)
        resp = self.client.post(
            "/days/1/exercises", params={"exercise_name": "Curl", "rpe": 12}
        )
        self.assertEqual(resp.status_code, 400)

    def test_single_active_program(self) -> None:
        first = self._program("A")
        second = self._program("B")
        self.client.post(f"/programs/{first}/activate")
        self.client.post(f"/programs/{second}/activate")
        active = [p["id"] for p in self.client.get("/programs").json() if p["is_active"]]
        self.assertEqual(active, [second])
        self.assertEqual(self.client.get("/programs/active").json()["id"], second)

    def test_calendar(self) -> None:
        pid = self._program("A", "B")
        for stamp in ("2024-02-29T09:00:00", "2024-02-29T18:00:00", "2024-03-01T09:00:00"):
            self.client.post(
                f"/programs/{pid}/days/0/complete", params={"performed_at": stamp}
            )
        resp = self.client.get("/calendar/2024/2")
        self.assertEqual(
            resp.json(), [{"date": "2024-02-29", "workout_count": 2, "ids": [1, 2]}]
        )
        resp = self.client.get("/calendar/day/2024-03-01")
        self.assertEqual([r["id"] for r in resp.json()], [3])
        self.assertEqual(self.client.get("/calendar/2024/13").status_code, 400)
        self.assertEqual(self.client.get("/calendar/day/tomorrow").status_code, 400)
        for path in ("/calendar/0/1", "/calendar/9999/12", "/calendar/0/1/grid"):
            self.assertEqual(self.client.get(path).status_code, 400)
        self.assertEqual(self.client.get("/calendar/day/9999-12-31").status_code, 400)
        grid = self.client.get("/calendar/2024/2/grid").json()
        self.assertEqual(grid[0][0]["date"], "2024-01-29")
        leap = [d for week in grid for d in week if d["date"] == "2024-02-29"]
        self.assertEqual(leap[0]["workout_count"], 2)

    def test_clone_and_delete_program(self) -> None:
        pid = self._program("A", "B")
        resp = self.client.post(f"/programs/{pid}/clone", params={"name": "Copy"})
        clone = resp.json()["id"]
        detail = self.client.get(f"/programs/{clone}").json()
        self.assertEqual([d["name"] for d in detail["days"]], ["A", "B"])
        resp = self.client.put(f"/programs/{clone}", params={"name": "Renamed"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get(f"/programs/{clone}").json()["name"], "Renamed")
        self.assertEqual(self.client.delete(f"/programs/{clone}").status_code, 200)
        self.assertEqual(self.client.get(f"/programs/{clone}").status_code, 404)

    def test_template_routes(self) -> None:
        resp = self.client.post(
            "/templates",
            params={"name": "Push Day"},
            json=[{"exercise_name": "Bench Press", "target_sets": 3, "target_reps": 8}],
        )
        tid = resp.json()["id"]
        self.assertEqual(self.client.get(f"/templates/{tid}").json()["name"], "Push Day")
        resp = self.client.post(
            "/templates", params={"name": "Legs"}, json=[{"exercise_name": "Squat", "target_sets": 50}]
        )
        self.assertEqual(resp.status_code, 400)
        resp = self.client.put(
            f"/templates/{tid}", params={"name": "Push"}, json=[{"exercise_name": "Dips"}]
        )
        self.assertEqual(resp.status_code, 200)
        detail = self.client.get(f"/templates/{tid}").json()
        self.assertEqual([e["exercise_name"] for e in detail["exercises"]], ["Dips"])
        self.assertEqual(len(self.client.get("/templates").json()), 1)
        self.assertEqual(self.client.delete(f"/templates/{tid}").status_code, 200)
        self.assertEqual(self.client.get(f"/templates/{tid}").status_code, 404)

    def test_workout_routes(self) -> None:
        self.assertEqual(self.client.get("/workouts/active").status_code, 404)
        tid = self.client.post(
            "/templates", params={"name": "Legs"}, json=[{"exercise_name": "Squat"}]
        ).json()["id"]
        wid = self.client.post(f"/templates/{tid}/start").json()["id"]
        active = self.client.get("/workouts/active").json()
        self.assertEqual(active["id"], wid)
        self.assertIn("elapsed_text", active)
        squat = active["exercises"][0]["id"]

        resp = self.client.post(
            f"/workout_exercises/{squat}/sets",
            params={"reps": 5, "weight": 220.46, "unit": "lb", "completed": True},
        )
        set_id = resp.json()["id"]
        resp = self.client.post(
            f"/workout_exercises/{squat}/sets", params={"reps": 0, "weight": 100}
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            self.client.put(f"/sets/{set_id}", params={"rpe": 8}).status_code, 200
        )
        lunge = self.client.post(
            f"/workouts/{wid}/exercises", params={"exercise_name": "Lunge"}
        ).json()["id"]
        lunge_set = self.client.post(
            f"/workout_exercises/{lunge}/sets", params={"reps": 10, "weight": 20}
        ).json()["id"]
        self.client.post(f"/sets/{lunge_set}/complete")
        self.assertEqual(self.client.delete(f"/sets/{lunge_set}").status_code, 200)
        self.assertEqual(self.client.delete(f"/workout_exercises/{lunge}").status_code, 200)

        records = self.client.get(f"/workouts/{wid}/records").json()
        self.assertEqual([(r["exercise_name"], r["weight"]) for r in records], [("Squat", 100.0)])
        resp = self.client.post(f"/workouts/{wid}/finish")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()["records"]), 1)
        self.assertEqual(self.client.post(f"/workouts/{wid}/finish").status_code, 400)

        history = self.client.get("/workouts/history").json()
        self.assertEqual(history[0]["template_name"], "Legs")
        self.assertEqual(history[0]["total_volume"], 500.0)
        stats = self.client.get("/exercises/squat/statistics").json()
        self.assertEqual(stats["total_workouts"], 1)
        self.assertEqual(stats["max_weight"], 100.0)
        self.assertEqual(len(self.client.get("/exercises/Squat/history").json()), 1)
        self.assertEqual(self.client.get("/personal_records").json()["Squat"][0]["weight"], 100.0)

        self.assertEqual(self.client.delete(f"/workouts/{wid}").status_code, 200)
        self.assertEqual(self.client.get(f"/workouts/{wid}").status_code, 404)

    def test_program_day_workout_route(self) -> None:
        pid = self._program("A", "B")
        self.assertEqual(
            self.client.post(f"/programs/{pid}/days/7/start").status_code, 400
        )
        wid = self.client.post(f"/programs/{pid}/days/1/start").json()["id"]
        self.client.post(f"/workouts/{wid}/finish")
        history = self.client.get("/history", params={"program_id": pid}).json()
        self.assertEqual([h["day_name"] for h in history], ["B"])
        self.assertEqual(self.client.get(f"/programs/{pid}").json()["current_day_index"], 0)

    def test_settings(self) -> None:
        resp = self.client.get("/settings/general")
        self.assertEqual(resp.json()["weight_unit"], "kg")
        resp = self.client.post("/settings/general", params={"weight_unit": "lb"})
        self.assertEqual(resp.status_code, 200)
        with open(self.yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        self.assertEqual(data["weight_unit"], "lb")
        resp = self.client.post("/settings/general", params={"weight_unit": "stone"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post("/settings/general", params={"show_weekday": False})
        self.assertFalse(self.client.get("/settings/general").json()["show_weekday"])


if __name__ == "__main__":
    unittest.main()
