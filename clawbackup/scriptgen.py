"""Generate the standalone backup launcher and its scheduler descriptor."""

import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .config import BackupConfig, ScheduleConfig
from .schedule import PLIST_FILENAME, ScheduleBuilder

SCRIPT_FILENAME = "backup_enhanced.py"
FALLBACK_INTERPRETER = "/usr/bin/env python3"

LAUNCHER_TEMPLATE = '''\
#!{python}
"""clawbackup launcher generated {generated_at}.

Re-run the setup wizard instead of editing this file.
"""

import sys

from clawbackup.backup_manager import run_backup
from clawbackup.config import BackupConfig

CONFIG = BackupConfig(
{fields})

if __name__ == "__main__":
    sys.exit(run_backup(CONFIG))
'''

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    """Files written by one setup run."""

    script_path: Path
    plist_path: Optional[Path] = None
    backup_path: Optional[Path] = None


def shebang_interpreter(python: Optional[str] = None) -> str:
    """Interpreter for the launcher's ``#!`` line."""
    python = python or sys.executable
    if not python:
        return FALLBACK_INTERPRETER
    if any(ch.isspace() for ch in python):
        # the kernel splits a shebang at the first whitespace
        logger.warning(
            f"Interpreter path contains whitespace, using '{FALLBACK_INTERPRETER}': {python}"
        )
        return FALLBACK_INTERPRETER
    return python


def render_backup_script(
    config: BackupConfig,
    python: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """Render the launcher source with every setting baked in as a literal."""
    fields = "".join(
        f"    {name}={value!r},\n" for name, value in config.model_dump().items()
    )
    return LAUNCHER_TEMPLATE.format(
        python=shebang_interpreter(python),
        generated_at=(generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        fields=fields,
    )


def safe_write(file_path: Path, content: str) -> None:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")


def write_script_with_backup(script_path: Path, content: str) -> Optional[Path]:
    """
    Write an executable script, keeping any previous one as ``<name>.bak``.

    Returns:
        Path of the ``.bak`` copy, or None if there was nothing to preserve
    """
    script_path = Path(script_path)
    backup_path = None
    if script_path.exists():
        backup_path = script_path.with_name(script_path.name + ".bak")
        os.replace(script_path, backup_path)
        logger.warning(f"Existing script backed up to: {backup_path}")

    safe_write(script_path, content)
    script_path.chmod(0o755)
    return backup_path


def generate(
    config: BackupConfig,
    schedule: ScheduleConfig,
    script_path: Optional[Path] = None,
    platform: str = sys.platform,
) -> GenerationResult:
    """
    Write the launcher and, on macOS with launchd selected, the plist.

    The launcher goes to ``<project_dir>/scripts/backup_enhanced.py`` unless
    ``script_path`` is given; the plist is written next to it.
    """
    if script_path is None:
        script_path = Path(config.project_dir) / "scripts" / SCRIPT_FILENAME
    script_path = Path(script_path).absolute()

    backup_path = write_script_with_backup(script_path, render_backup_script(config))
    logger.info(f"Backup script written to: {script_path}")
    result = GenerationResult(script_path=script_path, backup_path=backup_path)

    if schedule.type == "launchd" and platform == "darwin":
        plist_path = script_path.parent / PLIST_FILENAME
        safe_write(
            plist_path,
            ScheduleBuilder.build_launchd_plist(
                str(script_path), config.local_backup_dir, schedule.hour, schedule.minute
            ),
        )
        logger.info(f"Launchd plist written to: {plist_path}")
        result.plist_path = plist_path

    return result
