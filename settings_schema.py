from typing import Literal

import pytz
from pydantic import BaseModel, ValidationError, field_validator


class SettingsSchema(BaseModel):
    weight_unit: Literal["kg", "lb"] = "kg"
    time_format: Literal["12h", "24h"] = "24h"
    timezone: str = "UTC"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    week_start: Literal["monday", "sunday"] = "monday"
    show_weekday: bool = True

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"unknown timezone: {value}")
        return value


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
