"""
Shared pytest fixtures for clawbackup tests.

Provides a fake home directory laid out like a real clawd install and a
factory for BackupConfig objects pointing into it.
"""

import logging

import pytest

from clawbackup.config import BackupConfig
from clawbackup.logging_setup import LOGGER_NAME, close_logging


@pytest.fixture(autouse=True)
def reset_logging():
    """Let caplog see package logs and drop handlers left by a run."""
    logger = logging.getLogger(LOGGER_NAME)
    close_logging(logger)
    logger.propagate = True
    yield
    close_logging(logger)
    logger.propagate = True


@pytest.fixture
def clawd_home(tmp_path):
    """A home directory with a project, OpenClaw config and a mirror checkout."""
    home = tmp_path / "home"

    project = home / "clawd"
    (project / "memory").mkdir(parents=True)
    (project / "memory" / "2026-01-01.md").write_text("remember this\n")
    (project / "README.md").write_text("# clawd\n")
    (project / "AGENTS.md").write_text("agents\n")
    (project / "notes").mkdir()
    (project / "notes" / "deep.md").write_text("not staged\n")
    (project / "scripts").mkdir()
    (project / "scripts" / "run.sh").write_text("#!/bin/sh\necho hi\n")

    openclaw = home / ".openclaw"
    (openclaw / "skills" / "summarize").mkdir(parents=True)
    (openclaw / "skills" / "summarize" / "SKILL.md").write_text("skill\n")
    (openclaw / "cron").mkdir()
    (openclaw / "cron" / "jobs.json").write_text("[]\n")
    (openclaw / "openclaw.json").write_text("{}\n")
    (openclaw / "secrets.env").write_text("TOKEN=nope\n")

    mirror = home / "Dev" / "CursorApps" / "clawd"
    (mirror / "src").mkdir(parents=True)
    (mirror / "src" / "app.js").write_text("console.log('hi')\n")
    (mirror / "node_modules" / "left-pad").mkdir(parents=True)
    (mirror / "node_modules" / "left-pad" / "index.js").write_text("module.exports = 1\n")
    (mirror / "test-results").mkdir()
    (mirror / "test-results" / "report.txt").write_text("ok\n")

    return home


@pytest.fixture
def make_config(clawd_home):
    """Factory building a BackupConfig rooted in the fake home."""

    def _make(**overrides):
        values = {
            "project_dir": str(clawd_home / "clawd"),
            "openclaw_dir": str(clawd_home / ".openclaw"),
            "cursorapps_clawd": str(clawd_home / "Dev" / "CursorApps" / "clawd"),
            "local_backup_dir": str(clawd_home / "backups"),
            "retention_days": 7,
            "upload_mode": "local-only",
        }
        values.update(overrides)
        return BackupConfig(**values)

    return _make
