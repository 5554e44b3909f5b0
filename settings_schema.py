from typing import Literal

from pydantic import BaseModel, ValidationError, field_validator


class SettingsSchema(BaseModel):
    database_name: str = "WorkoutApp.db"
    timeout: float = 5.0
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("database_name")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("database_name must not be empty")
        return value

    @field_validator("timeout")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("timeout must be non-negative")
        return value


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
