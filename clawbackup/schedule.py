"""Scheduler descriptors (launchd plist, crontab line) for the backup launcher."""

import os
import plistlib
from datetime import datetime
from typing import List, Optional

from croniter import croniter

from .config import to_posix

LAUNCHD_LABEL = "com.openclaw.backup"
LAUNCHD_PATH = "/opt/homebrew/bin:/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"
PLIST_FILENAME = f"{LAUNCHD_LABEL}.plist"


class ScheduleBuilder:
    """Builds calendar-triggered job definitions for the host scheduler."""

    @staticmethod
    def cron_expression(hour: int, minute: int) -> str:
        """
        Build a daily cron expression for the given time.

        Raises:
            ValueError: if hour/minute do not form a valid cron expression
        """
        expression = f"{minute} {hour} * * *"
        if not croniter.is_valid(expression):
            raise ValueError(f"Invalid schedule time {hour}:{minute}")
        return expression

    @staticmethod
    def crontab_line(script_path: str, hour: int, minute: int) -> str:
        """Line to add with ``crontab -e``."""
        return f"{ScheduleBuilder.cron_expression(hour, minute)} {script_path}"

    @staticmethod
    def next_run_time(
        hour: int, minute: int, current_time: Optional[datetime] = None
    ) -> datetime:
        """
        Get the next time the daily schedule fires.

        Args:
            hour: Hour of day (0-23)
            minute: Minute of hour (0-59)
            current_time: Current time (defaults to now)

        Returns:
            Next scheduled run time
        """
        if current_time is None:
            current_time = datetime.now()

        cron = croniter(ScheduleBuilder.cron_expression(hour, minute), current_time)
        return cron.get_next(datetime)

    @staticmethod
    def build_launchd_plist(
        script_path: str, local_backup_dir: str, hour: int, minute: int
    ) -> str:
        """
        Render the LaunchAgent plist that runs the launcher daily.

        Logs from launchd itself go to ``launchd.log``/``launchd.err`` inside
        the local backup directory.
        """
        job = {
            "Label": LAUNCHD_LABEL,
            "ProgramArguments": [to_posix(script_path)],
            "EnvironmentVariables": {"PATH": LAUNCHD_PATH},
            "StartCalendarInterval": {"Hour": int(hour), "Minute": int(minute)},
            "StandardOutPath": to_posix(os.path.join(local_backup_dir, "launchd.log")),
            "StandardErrorPath": to_posix(os.path.join(local_backup_dir, "launchd.err")),
        }
        return plistlib.dumps(job, sort_keys=False).decode("utf-8")

    @staticmethod
    def install_instructions(
        schedule: str,
        script_path: str,
        hour: int,
        minute: int,
        plist_path: Optional[str] = None,
        launch_agents_dir: Optional[str] = None,
    ) -> List[str]:
        """Lines telling the user how to register the written schedule."""
        if schedule == "launchd" and plist_path:
            if launch_agents_dir is None:
                launch_agents_dir = os.path.join(
                    os.path.expanduser("~"), "Library", "LaunchAgents"
                )
            installed = os.path.join(launch_agents_dir, PLIST_FILENAME)
            return [
                "Install the scheduler (run as your user, do not use sudo):",
                f'  mkdir -p "{launch_agents_dir}"',
                f'  cp "{plist_path}" "{installed}"',
                f'  launchctl load "{installed}"',
            ]
        if schedule == "cron":
            return [
                "Add this line to crontab (crontab -e):",
                f"  {ScheduleBuilder.crontab_line(script_path, hour, minute)}",
            ]
        return [
            "Scheduler not configured. Run the backup script manually or set up cron/launchd."
        ]
