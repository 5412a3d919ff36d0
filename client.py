import requests
from typing import Optional


class ProgramClient:
    """Simple REST client for the program API."""

    def __init__(self, base_url: str = "http://localhost:8000") -> None:
        self.base_url = base_url.rstrip("/")

    def create_program(self, name: str, description: Optional[str] = None) -> int:
        resp = requests.post(
            f"{self.base_url}/programs",
            params={"name": name, "description": description},
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def list_programs(self):
        resp = requests.get(f"{self.base_url}/programs")
        resp.raise_for_status()
        return resp.json()

    def add_day(self, program_id: int, name: str, weekday: Optional[str] = None) -> int:
        resp = requests.post(
            f"{self.base_url}/programs/{program_id}/days",
            params={"name": name, "weekday": weekday},
        )
        resp.raise_for_status()
        return resp.json()["id"]

    def activate(self, program_id: int) -> None:
        resp = requests.post(f"{self.base_url}/programs/{program_id}/activate")
        resp.raise_for_status()

    def start_active_program(self) -> dict:
        resp = requests.post(f"{self.base_url}/programs/active/start")
        resp.raise_for_status()
        return resp.json()

    def choose_day(self, program_id: int, day_index: int) -> dict:
        resp = requests.post(
            f"{self.base_url}/programs/{program_id}/days/{day_index}/choose"
        )
        resp.raise_for_status()
        return resp.json()

    def complete_day(
        self,
        program_id: int,
        day_index: int,
        performed_at: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> dict:
        resp = requests.post(
            f"{self.base_url}/programs/{program_id}/days/{day_index}/complete",
            params={"performed_at": performed_at, "duration_seconds": duration_seconds},
        )
        resp.raise_for_status()
        return resp.json()

    def history(self, **params: str):
        resp = requests.get(f"{self.base_url}/history", params=params)
        resp.raise_for_status()
        return resp.json()
