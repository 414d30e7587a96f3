"""Collect the files of one backup run into its staging directory."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List

from .config import BackupConfig

MIRROR_EXCLUDES = ("node_modules", "test-results", ".last-run.json")

OPENCLAW_FILES = ("openclaw.json", "round-robin-models.json")
OPENCLAW_DIRS = ("skills", "modules", "workspace", "workspace-local-ops")

RESTORE_NOTES = """\
ClawBackup restore notes

This archive contains OpenClaw user data and active skills.

Restore targets for skills:
- openclaw_config/skills  -> {openclaw_dir}/skills
- cursorapps_clawd/skills -> {cursorapps_clawd}/skills

Other restore targets:
- openclaw_config/*       -> {openclaw_dir}/
- clawd_scripts/*         -> {project_dir}/scripts/
- root_md_files/*         -> {project_dir}/

Note: {openclaw_dir} and {cursorapps_clawd} should match your local setup.
"""


def _copy_entry(src: Path, dest: Path) -> None:
    """Copy a file or directory tree to ``dest``, keeping symlinks as links."""
    if src.is_dir() and not src.is_symlink():
        shutil.copytree(src, dest, symlinks=True, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dest, follow_symlinks=False)


def _visible_entries(directory: Path) -> List[Path]:
    """Entries a shell ``dir/*`` glob would expand to."""
    return sorted(p for p in directory.iterdir() if not p.name.startswith("."))


class StagingCollector:
    """Copies the project's memory, notes, scripts and config into staging.

    Missing sources are skipped. Copy errors for existing sources are fatal,
    except for the scripts folder and the mirror fallback copy, which are
    best-effort.
    """

    def __init__(self, config: BackupConfig, staging_dir: Path):
        self.config = config
        self.staging_dir = Path(staging_dir)
        self.logger = logging.getLogger(__name__)

    def collect(self) -> List[str]:
        """Stage everything and return the names of the staged sections."""
        self.logger.info("Preparing backup staging area...")
        self.staging_dir.mkdir(parents=True)
        self.write_restore_notes()

        staged = []
        for name, step in (
            ("memory", self.stage_memory),
            ("root_md_files", self.stage_root_markdown),
            ("clawd_scripts", self.stage_scripts),
            ("openclaw_config", self.stage_openclaw_config),
            ("cursorapps_clawd", self.stage_cursorapps_mirror),
        ):
            if step():
                staged.append(name)
        return staged

    def write_restore_notes(self) -> None:
        notes = RESTORE_NOTES.format(
            openclaw_dir=self.config.openclaw_dir,
            cursorapps_clawd=self.config.cursorapps_clawd,
            project_dir=self.config.project_dir,
        )
        (self.staging_dir / "RESTORE_NOTES.txt").write_text(notes, encoding="utf-8")

    def stage_memory(self) -> bool:
        source = Path(self.config.source_dir)
        if not source.is_dir():
            return False
        shutil.copytree(source, self.staging_dir / source.name, symlinks=True)
        self.logger.info("Staged memory directory.")
        return True

    def stage_root_markdown(self) -> bool:
        project = Path(self.config.project_dir)
        if not project.is_dir():
            return False
        md_files = sorted(
            p for p in project.glob("*.md") if p.is_file() and not p.is_symlink()
        )
        if not md_files:
            return False
        target = self.staging_dir / "root_md_files"
        target.mkdir(parents=True, exist_ok=True)
        for md_file in md_files:
            shutil.copy2(md_file, target / md_file.name)
        self.logger.info(f"Staged {len(md_files)} .md files from project root.")
        return True

    def stage_scripts(self) -> bool:
        scripts = Path(self.config.project_dir) / "scripts"
        if not scripts.is_dir():
            return False
        target = self.staging_dir / "clawd_scripts"
        target.mkdir(parents=True, exist_ok=True)
        for entry in _visible_entries(scripts):
            try:
                _copy_entry(entry, target / entry.name)
            except (OSError, shutil.Error) as e:
                self.logger.warning(f"Could not stage script '{entry}': {e}")
        self.logger.info("Staged clawd/scripts.")
        return True

    def stage_openclaw_config(self) -> bool:
        target = self.staging_dir / "openclaw_config"
        target.mkdir(parents=True, exist_ok=True)

        openclaw = Path(self.config.openclaw_dir)
        if not openclaw.is_dir():
            return False

        for name in OPENCLAW_FILES:
            if (openclaw / name).is_file():
                shutil.copy2(openclaw / name, target / name)
        for name in OPENCLAW_DIRS:
            if (openclaw / name).is_dir():
                shutil.copytree(openclaw / name, target / name, symlinks=True)

        jobs = openclaw / "cron" / "jobs.json"
        if jobs.is_file():
            (target / "cron").mkdir(exist_ok=True)
            shutil.copy2(jobs, target / "cron" / "jobs.json")

        self.logger.info("Staged ~/.openclaw custom config.")
        return True

    def stage_cursorapps_mirror(self) -> bool:
        mirror = Path(self.config.cursorapps_clawd)
        if not mirror.is_dir():
            return False
        target = self.staging_dir / "cursorapps_clawd"
        target.mkdir(parents=True, exist_ok=True)

        if shutil.which("rsync"):
            cmd = ["rsync", "-a"]
            cmd.extend(f"--exclude={name}" for name in MIRROR_EXCLUDES)
            cmd.extend([f"{mirror}/", f"{target}/"])
            subprocess.run(cmd, check=True)
        else:
            self.logger.debug("rsync not found; falling back to a plain copy")
            for entry in _visible_entries(mirror):
                try:
                    _copy_entry(entry, target / entry.name)
                except (OSError, shutil.Error) as e:
                    self.logger.warning(f"Could not stage '{entry}': {e}")
            self._remove_excluded(target)

        self.logger.info("Staged Dev/CursorApps/clawd.")
        return True

    def _remove_excluded(self, target: Path) -> None:
        for name in MIRROR_EXCLUDES:
            path = target / name
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                elif path.exists() or path.is_symlink():
                    path.unlink()
            except OSError as e:
                self.logger.warning(f"Could not remove excluded '{path}': {e}")
