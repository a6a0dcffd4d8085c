"""
Configuration management using Pydantic models loaded from YAML.
"""

from pathlib import Path

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator

MINUTES_PER_DAY = 24 * 60


class ScheduleConfig(BaseModel):
    """Slot grid and lookahead settings."""
    slot_duration_minutes: int = 30
    range_days: int = 7

    @field_validator("slot_duration_minutes")
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        """Ensure the slot duration is positive and tiles a day."""
        if value <= 0:
            raise ValueError("slot_duration_minutes must be greater than zero")
        if MINUTES_PER_DAY % value:
            raise ValueError(f"slot_duration_minutes must divide a day evenly, got {value}")
        return value

    @field_validator("range_days")
    @classmethod
    def validate_range_days(cls, value: int) -> int:
        """Days are bucketed by weekday, so the window is exactly one week."""
        if value != 7:
            raise ValueError(f"range_days must be 7, got {value}")
        return value


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "UTC"
    database_path: str = "availabilities.db"
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA identifier."""
        try:
            pendulum.timezone(value)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Load the configuration, falling back to defaults when no file exists.

    An explicitly given path must exist.
    """
    if config_path is not None:
        return AppConfig.load_from_yaml(config_path)

    default_path = get_default_config_path()
    if not default_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(default_path)
