"""Backup engine: one locked stage/archive/checksum/upload/prune cycle."""

import json
import logging
import os
import platform
import shutil
import signal
import socket
import subprocess
import sys
import tempfile
import threading
import time
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .config import BackupConfig
from .logging_setup import close_logging, setup_logging
from .staging import StagingCollector

ARCHIVE_PREFIX = "clawd_memory_backup_"
ARCHIVE_PATTERN = f"{ARCHIVE_PREFIX}*.tar.gz"
CHECKSUM_PATTERN = f"{ARCHIVE_PREFIX}*.tar.gz.sha256"
STAGING_PREFIX = "clawd_backup_"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"
SECONDS_PER_DAY = 86400

CHECKSUM_COMMANDS = (["shasum", "-a", "256"], ["sha256sum"])


class MissingDependencyError(RuntimeError):
    """A required external tool is not on PATH."""

    def __init__(self, tool: str):
        super().__init__(f"Missing dependency: {tool}")
        self.tool = tool


class BackupInterrupted(Exception):
    """The run received a termination signal."""

    def __init__(self, signum: int):
        super().__init__(f"Backup interrupted by signal {signum}")
        self.signum = signum


@dataclass(frozen=True)
class BackupRun:
    """Paths and identity of a single backup run."""

    timestamp: str
    temp_root: Path
    staging_dir: Path
    archive_path: Path

    @classmethod
    def create(
        cls, config: BackupConfig, temp_root: Path, now: Optional[datetime] = None
    ) -> "BackupRun":
        timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
        return cls(
            timestamp=timestamp,
            temp_root=Path(temp_root),
            staging_dir=Path(temp_root) / f"{STAGING_PREFIX}{timestamp}",
            archive_path=Path(config.local_backup_dir) / f"{ARCHIVE_PREFIX}{timestamp}.tar.gz",
        )

    @property
    def archive_name(self) -> str:
        return self.archive_path.name

    @property
    def checksum_path(self) -> Path:
        return self.archive_path.with_name(self.archive_path.name + ".sha256")


def required_tools(config: BackupConfig) -> List[str]:
    tools = ["tar"]
    if config.upload_mode == "rclone":
        tools.append("rclone")
    return tools


def check_dependencies(config: BackupConfig) -> None:
    """Raise MissingDependencyError for the first required tool not found."""
    for tool in required_tools(config):
        if shutil.which(tool) is None:
            raise MissingDependencyError(tool)


def _hostname() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


def _os_identity() -> str:
    try:
        return " ".join(part for part in platform.uname() if part) or "unknown"
    except OSError:
        return "unknown"


def build_manifest(
    config: BackupConfig, run: BackupRun, created_at: Optional[datetime] = None
) -> Dict:
    """Metadata describing a run, stored inside its own archive."""
    created_at = created_at or datetime.now(timezone.utc)
    return {
        "createdAt": created_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "hostname": _hostname(),
        "os": _os_identity(),
        "projectDir": config.project_dir,
        "sourceDir": config.source_dir,
        "openclawDir": config.openclaw_dir,
        "cursorappsClawd": config.cursorapps_clawd,
        "localBackupDir": config.local_backup_dir,
        "archiveName": run.archive_name,
        "retentionDays": config.retention_days,
        "uploadMode": config.upload_mode,
    }


@contextmanager
def interrupt_on_signals() -> Iterator[None]:
    """Turn SIGTERM/SIGHUP into BackupInterrupted so cleanup code runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _raise(signum, frame):
        raise BackupInterrupted(signum)

    previous = {}
    for name in ("SIGTERM", "SIGHUP"):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, _raise)
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)


class RcloneManager:
    """Handles rclone transfers and remote retention."""

    def __init__(self, config: BackupConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def copy_to_remote(self, source: Path, interactive: bool) -> None:
        """
        Copy a file to the configured remote.

        Raises:
            subprocess.CalledProcessError: if rclone exits non-zero
        """
        cmd = ["rclone", "copy", str(source), self.config.remote_target]
        if interactive:
            cmd.append("--progress")
        else:
            cmd.extend(["--stats-one-line", "--stats", "10s"])

        self.logger.debug(f"Running rclone command: {' '.join(cmd)}")
        subprocess.run(cmd, check=True)

    def copy_sidecar(self, source: Path) -> bool:
        """Best-effort copy of a small companion file; never raises."""
        cmd = ["rclone", "copy", str(source), self.config.remote_target]
        try:
            result = subprocess.run(
                cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
            )
        except OSError as e:
            self.logger.warning(f"Could not upload '{source.name}': {e}")
            return False
        if result.returncode != 0:
            self.logger.warning(
                f"Could not upload '{source.name}' (rclone exit {result.returncode})."
            )
            return False
        return True

    @property
    def remote_cleanup_allowed(self) -> bool:
        dest = self.config.rclone_dest
        return (
            self.config.upload_mode == "rclone"
            and bool(self.config.rclone_remote)
            and bool(dest)
            and dest != "/"
        )

    def delete_old_remote(self) -> bool:
        """
        Delete remote archives and checksums older than the retention period.

        Failures are logged and reported through the return value only.
        """
        cmd = [
            "rclone",
            "delete",
            self.config.remote_target,
            "--min-age",
            f"{self.config.retention_days}d",
            "--include",
            ARCHIVE_PATTERN,
            "--include",
            CHECKSUM_PATTERN,
        ]
        try:
            result = subprocess.run(cmd, stderr=subprocess.DEVNULL)
        except OSError as e:
            self.logger.warning(f"Remote cleanup failed: {e}")
            return False
        if result.returncode != 0:
            self.logger.warning(f"Remote cleanup failed (rclone exit {result.returncode}).")
            return False
        return True


class LocalRetention:
    """Deletes expired archives and checksums from the local backup directory."""

    def __init__(self, backup_dir: str, retention_days: int):
        self.backup_dir = Path(backup_dir)
        self.retention_days = retention_days
        self.logger = logging.getLogger(__name__)

    def is_expired(self, mtime: float, now: float) -> bool:
        # whole days of age, like find -mtime +N
        return int((now - mtime) // SECONDS_PER_DAY) > self.retention_days

    def sweep(self, now: Optional[float] = None) -> List[Path]:
        """Delete expired files, non-recursively, and return what was deleted."""
        if now is None:
            now = time.time()

        deleted = []
        with os.scandir(self.backup_dir) as entries:
            candidates = sorted(entries, key=lambda e: e.name)

        for entry in candidates:
            if not entry.is_file(follow_symlinks=False):
                continue
            if fnmatchcase(entry.name, ARCHIVE_PATTERN):
                kind = "backup"
            elif fnmatchcase(entry.name, CHECKSUM_PATTERN):
                kind = "checksum"
            else:
                continue
            if not self.is_expired(entry.stat(follow_symlinks=False).st_mtime, now):
                continue

            path = Path(entry.path)
            path.unlink()
            deleted.append(path)
            self.logger.info(f"Deleted old local {kind}: '{path}'.")
        return deleted


class BackupManager:
    """Runs one backup cycle for a resolved configuration."""

    def __init__(self, config: BackupConfig, interactive: Optional[bool] = None):
        self.config = config
        self.interactive = sys.stdout.isatty() if interactive is None else interactive
        self.rclone = RcloneManager(config)
        self.retention = LocalRetention(config.local_backup_dir, config.retention_days)
        self.logger = logging.getLogger(__name__)

    def run(self) -> int:
        """
        Execute the full backup cycle.

        Returns:
            0 on success or when another run holds the lock, 1 on failure,
            128 + signal number when interrupted
        """
        try:
            check_dependencies(self.config)
        except MissingDependencyError as e:
            print(str(e), file=sys.stderr)
            return 1

        try:
            self._open_log()
        except OSError as e:
            print(f"ERROR: Cannot open backup log: {e}", file=sys.stderr)
            return 1

        try:
            return self._run_locked()
        except BackupInterrupted as e:
            self.logger.warning(str(e))
            return 128 + e.signum
        except KeyboardInterrupt:
            self.logger.warning("Backup process interrupted by user")
            return 130
        except subprocess.CalledProcessError as e:
            cmd = " ".join(str(part) for part in e.cmd)
            self.logger.error(f"Command failed with exit code {e.returncode}: {cmd}")
            return 1
        except Exception as e:
            self.logger.critical(f"Backup failed: {e}", exc_info=True)
            return 1
        finally:
            close_logging()

    def _open_log(self) -> None:
        backup_dir = Path(self.config.local_backup_dir)
        created = not backup_dir.is_dir()
        backup_dir.mkdir(parents=True, exist_ok=True)
        setup_logging(self.config.log_file)
        if created:
            self.logger.info(f"Created local backup directory '{backup_dir}'.")

    def acquire_lock(self, cleanup: ExitStack) -> bool:
        """Create the lock directory; register its removal on success."""
        lock_dir = self.config.lock_dir
        try:
            os.mkdir(lock_dir)
        except FileExistsError:
            return False
        cleanup.callback(self._release_lock, lock_dir)
        return True

    def _release_lock(self, lock_dir: str) -> None:
        try:
            os.rmdir(lock_dir)
        except OSError as e:
            self.logger.warning(f"Could not remove lock '{lock_dir}': {e}")

    def _run_locked(self) -> int:
        with ExitStack() as cleanup:
            cleanup.enter_context(interrupt_on_signals())
            if not self.acquire_lock(cleanup):
                self.logger.info("Another backup is already running (lock exists). Exiting.")
                return 0

            temp_root = Path(tempfile.mkdtemp(prefix="clawbackup_"))
            cleanup.callback(shutil.rmtree, temp_root, ignore_errors=True)

            run = BackupRun.create(self.config, temp_root)
            StagingCollector(self.config, run.staging_dir).collect()
            self.write_manifest(run)
            self.create_archive(run)
            self.write_checksum(run)
            self.upload(run)
            self.apply_retention()

            self.logger.info("Backup process completed successfully.")
            return 0

    def write_manifest(self, run: BackupRun) -> Path:
        self.logger.info("Writing manifest...")
        manifest_path = run.staging_dir / "manifest.json"
        with open(manifest_path, "w", encoding="utf-8") as f:
            json.dump(build_manifest(self.config, run), f, indent=2)
        return manifest_path

    def create_archive(self, run: BackupRun) -> Path:
        """Compress the staging directory into the local backup directory."""
        self.logger.info(f"Creating backup archive '{run.archive_path}'...")
        cmd = [
            "tar",
            "-czf",
            str(run.archive_path),
            "-C",
            str(run.temp_root),
            run.staging_dir.name,
        ]
        try:
            subprocess.run(cmd, check=True)
        except BaseException:
            # includes BackupInterrupted and KeyboardInterrupt mid-tar
            run.archive_path.unlink(missing_ok=True)
            raise
        self.logger.info("Backup archive created successfully.")
        return run.archive_path

    def write_checksum(self, run: BackupRun) -> Optional[Path]:
        """Write a SHA-256 sidecar using whichever checksum tool exists."""
        self.logger.info("Writing checksum...")
        for cmd in CHECKSUM_COMMANDS:
            if shutil.which(cmd[0]) is None:
                continue
            try:
                with open(run.checksum_path, "w", encoding="utf-8") as out:
                    subprocess.run(cmd + [str(run.archive_path)], stdout=out, check=True)
            except BaseException:
                run.checksum_path.unlink(missing_ok=True)
                raise
            return run.checksum_path

        self.logger.warning("No sha256 tool found (shasum/sha256sum). Skipping checksum.")
        return None

    def upload(self, run: BackupRun) -> bool:
        """Upload the archive and its checksum; returns False when disabled."""
        if self.config.upload_mode == "local-only":
            self.logger.info("Upload disabled (local-only). Skipping rclone transfer.")
            return False

        self.logger.info("Starting rclone transfer...")
        self.rclone.copy_to_remote(run.archive_path, self.interactive)
        if run.checksum_path.is_file():
            self.rclone.copy_sidecar(run.checksum_path)
        self.logger.info(f"Backup successfully transferred to {self.config.remote_target}.")
        return True

    def apply_retention(self) -> None:
        days = self.config.retention_days
        self.logger.info(f"Applying retention policy ({days} days)...")
        self.retention.sweep()

        self.logger.info(f"Cleaning up remote backups older than {days} days...")
        if self.rclone.remote_cleanup_allowed:
            self.rclone.delete_old_remote()
        else:
            self.logger.info(
                "Skipping remote cleanup: upload mode local-only or remote/dest invalid."
            )


def run_backup(config: BackupConfig, interactive: Optional[bool] = None) -> int:
    """Entry point used by generated launchers."""
    return BackupManager(config, interactive=interactive).run()
