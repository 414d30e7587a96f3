"""Interactive setup wizard that resolves an AppConfig."""

import sys
from typing import Callable, Optional, TextIO

from .config import (
    AppConfig,
    BackupConfig,
    ScheduleConfig,
    resolve_dir,
    validate_path,
)


class Prompter:
    """Input/output used by the wizard; pass one in instead of touching stdin."""

    def __init__(
        self,
        input_fn: Optional[Callable[[str], str]] = None,
        output: Optional[TextIO] = None,
    ):
        self.input_fn = input_fn or input
        self.output = output or sys.stdout

    def ask(self, label: str, default) -> str:
        """Prompt with the default in brackets; blank answers yield the default."""
        answer = self.input_fn(f"{label} [{default}]: ").strip()
        return answer or str(default)

    def say(self, message: str = "") -> None:
        print(message, file=self.output)


def default_settings() -> AppConfig:
    """Settings for non-interactive ``--defaults`` mode."""
    return AppConfig()


def collect_settings(prompter: Prompter) -> AppConfig:
    """Ask for every setting in turn and return the validated result."""
    defaults = BackupConfig()
    schedule_defaults = ScheduleConfig()

    prompter.say("ClawBackup Setup (interactive)\n")

    paths = {}
    for field, label in (
        ("project_dir", "Project dir"),
        ("openclaw_dir", "~/.openclaw dir"),
        ("cursorapps_clawd", "Dev/CursorApps/clawd dir"),
        ("local_backup_dir", "Local backup dir"),
    ):
        paths[field] = (label, resolve_dir(prompter.ask(label, getattr(defaults, field))))
    for label, path in paths.values():
        validate_path(label, path)

    rclone_remote = prompter.ask("rclone remote", defaults.rclone_remote)
    rclone_dest = prompter.ask("rclone dest path", defaults.rclone_dest)
    retention_days = prompter.ask("Retention days", defaults.retention_days)
    upload_mode = prompter.ask("Upload mode (rclone|local-only)", defaults.upload_mode)
    schedule_type = ScheduleConfig(
        type=prompter.ask("Schedule (launchd|cron|none)", schedule_defaults.type)
    ).type

    hour, minute = schedule_defaults.hour, schedule_defaults.minute
    if schedule_type != "none":
        hour = prompter.ask("Schedule hour 0-23", schedule_defaults.hour)
        minute = prompter.ask("Schedule minute 0-59", schedule_defaults.minute)

    backup = BackupConfig(
        **{field: path for field, (_, path) in paths.items()},
        rclone_remote=rclone_remote,
        rclone_dest=rclone_dest,
        retention_days=retention_days,
        upload_mode=upload_mode,
    )
    schedule = ScheduleConfig(type=schedule_type, hour=hour, minute=minute)
    return AppConfig(backup=backup, schedule=schedule)
