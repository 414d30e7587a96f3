"""Configuration management for the clawbackup setup wizard and engine."""

from __future__ import annotations

import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

logger = logging.getLogger(__name__)

HOME = str(Path.home())

UPLOAD_MODES = ("rclone", "local-only")
SCHEDULES = ("launchd", "cron", "none")

DEFAULT_RETENTION_DAYS = 7
DEFAULT_UPLOAD_MODE = "rclone"
DEFAULT_SCHEDULE = "launchd" if sys.platform == "darwin" else "cron"
DEFAULT_SCHEDULE_HOUR = 11
DEFAULT_SCHEDULE_MINUTE = 0

PATH_FIELDS = ("project_dir", "openclaw_dir", "cursorapps_clawd", "local_backup_dir")


def resolve_dir(path: Any) -> Any:
    """Expand a leading ``~`` and return an absolute path.

    Cron and launchd do not run from the user's working directory, so every
    path baked into the launcher must be absolute. Non-strings and blank
    strings are returned unchanged.
    """
    if not isinstance(path, str) or not path.strip():
        return path
    expanded = re.sub(r"^~(?=/|$)", lambda _: HOME, path.strip())
    return os.path.abspath(expanded)


def to_posix(path: Any) -> Any:
    """Normalize OS separators to forward slashes."""
    if not isinstance(path, str):
        return path
    return path.replace(os.sep, "/")


def validate_path(label: str, path: Optional[str]) -> Optional[str]:
    """Warn if the path does not exist; return it unchanged."""
    if path and not os.path.exists(path):
        logger.warning(f'"{label}" does not exist: {path}')
    return path


def normalize_schedule(value: Optional[str]) -> str:
    """Return a known schedule type, falling back to the platform default."""
    raw = (value or "").strip()
    if raw.lower() in SCHEDULES:
        return raw.lower()
    if raw:
        logger.warning(f'Unknown schedule "{value}"; using "{DEFAULT_SCHEDULE}".')
    return DEFAULT_SCHEDULE


def normalize_upload_mode(value: Optional[str]) -> str:
    """Return ``rclone`` or ``local-only``, falling back to ``rclone``."""
    raw = (value or "").strip()
    if raw.lower() in UPLOAD_MODES:
        return raw.lower()
    if raw:
        logger.warning(f'Unknown upload mode "{value}"; using "{DEFAULT_UPLOAD_MODE}".')
    return DEFAULT_UPLOAD_MODE


def normalize_range(value: Any, fallback: int, low: int, high: int, label: str) -> int:
    """Extract digits from ``value`` and check them against ``[low, high]``.

    Empty input silently yields ``fallback``; out-of-range input yields
    ``fallback`` with a warning.
    """
    digits = re.sub(r"[^0-9]", "", "" if value is None else str(value))
    if not digits:
        return fallback
    number = int(digits)
    if number < low or number > high:
        logger.warning(f'Invalid {label} "{value}"; using "{fallback}".')
        return fallback
    return number


def normalize_retention(value: Any) -> int:
    """Keep only the digits of ``value``; empty means the default of 7 days."""
    digits = re.sub(r"[^0-9]", "", "" if value is None else str(value))
    return int(digits) if digits else DEFAULT_RETENTION_DAYS


class BackupConfig(BaseModel):
    """Resolved configuration baked into a backup launcher."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    project_dir: str = Field(
        default_factory=lambda: os.path.join(HOME, "clawd"),
        description="Project directory; its memory/ subfolder is the primary source",
    )
    openclaw_dir: str = Field(
        default_factory=lambda: os.path.join(HOME, ".openclaw"),
        description="Auxiliary OpenClaw config directory",
    )
    cursorapps_clawd: str = Field(
        default_factory=lambda: os.path.join(HOME, "Dev", "CursorApps", "clawd"),
        description="Secondary project mirror directory",
    )
    local_backup_dir: str = Field(
        default_factory=lambda: os.path.join(HOME, "clawd", "MoltBackups", "Memory"),
        description="Directory that receives archives, checksums and the run log",
    )
    retention_days: int = Field(
        default=DEFAULT_RETENTION_DAYS,
        ge=0,
        description="Age in days beyond which archives are deleted locally and remotely",
    )
    upload_mode: Literal["rclone", "local-only"] = Field(
        default=DEFAULT_UPLOAD_MODE, description="Whether archives are uploaded with rclone"
    )
    rclone_remote: str = Field(default="googleDrive:", description="rclone remote name")
    rclone_dest: str = Field(
        default="MoltBackups/Memory/", description="Destination path on the rclone remote"
    )

    @field_validator(*PATH_FIELDS, "rclone_remote", "rclone_dest", mode="before")
    @classmethod
    def default_when_blank(cls, v: Any, info: ValidationInfo) -> Any:
        """Blank values fall back to the field default."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return v

    @field_validator(*PATH_FIELDS)
    @classmethod
    def validate_path_field(cls, v: str) -> str:
        """Resolve to an absolute, forward-slash path."""
        return to_posix(resolve_dir(v))

    @field_validator("retention_days", mode="before")
    @classmethod
    def validate_retention_days(cls, v: Any) -> int:
        return normalize_retention(v)

    @field_validator("upload_mode", mode="before")
    @classmethod
    def validate_upload_mode(cls, v: Any) -> str:
        return normalize_upload_mode(v if isinstance(v, str) else None)

    @property
    def source_dir(self) -> str:
        return f"{self.project_dir}/memory"

    @property
    def log_file(self) -> str:
        return f"{self.local_backup_dir}/backup.log"

    @property
    def lock_dir(self) -> str:
        return f"{self.local_backup_dir}/.lock"

    @property
    def remote_target(self) -> str:
        """rclone destination, remote name and path concatenated."""
        return f"{self.rclone_remote}{self.rclone_dest}"


class ScheduleConfig(BaseModel):
    """When and how the launcher should be scheduled."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["launchd", "cron", "none"] = Field(
        default=DEFAULT_SCHEDULE, description="Scheduler to configure"
    )
    hour: int = Field(default=DEFAULT_SCHEDULE_HOUR, ge=0, le=23)
    minute: int = Field(default=DEFAULT_SCHEDULE_MINUTE, ge=0, le=59)

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> str:
        return normalize_schedule(v if isinstance(v, str) else None)

    @field_validator("hour", mode="before")
    @classmethod
    def validate_hour(cls, v: Any) -> int:
        return normalize_range(v, DEFAULT_SCHEDULE_HOUR, 0, 23, "schedule hour")

    @field_validator("minute", mode="before")
    @classmethod
    def validate_minute(cls, v: Any) -> int:
        return normalize_range(v, DEFAULT_SCHEDULE_MINUTE, 0, 59, "schedule minute")


class AppConfig(BaseModel):
    """Everything the setup wizard needs: backup settings plus schedule."""

    backup: BackupConfig = Field(default_factory=BackupConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)


def load_config(config_path: str = "config.yaml") -> AppConfig:
    """Load and validate configuration from a YAML file.

    Backup fields sit at the top level; an optional ``schedule`` mapping holds
    ``type``, ``hour`` and ``minute``.
    """
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML format in config file: {e}")

    if config_data is None:
        raise ValueError("Configuration file is empty")
    if not isinstance(config_data, dict):
        raise ValueError("Configuration file must contain a mapping")

    schedule_data = config_data.pop("schedule", None) or {}
    try:
        return AppConfig(
            backup=BackupConfig(**config_data),
            schedule=ScheduleConfig(**schedule_data),
        )
    except Exception as e:
        raise ValueError(f"Configuration validation error: {e}")
