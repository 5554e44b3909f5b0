import os
import logging
import yaml

from settings_schema import validate_settings

APP_VERSION = "1.0.0"
DATABASE_NAME = "WorkoutApp.db"

DEFAULT_SETTINGS = {
    "database_name": DATABASE_NAME,
    "timeout": 5.0,
    "log_level": "INFO",
}


class YamlConfig:
    """Load and save data-layer settings to a YAML file."""

    def __init__(self, path: str = "settings.yaml") -> None:
        self.path = path

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


def load_settings(path: str = "settings.yaml") -> dict:
    """Return validated settings from ``path`` merged over the defaults."""
    settings = dict(DEFAULT_SETTINGS)
    settings.update(YamlConfig(path).load())
    validate_settings(settings)
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
