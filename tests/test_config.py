"""Tests for configuration normalization and YAML loading."""

import logging
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from clawbackup.config import (
    DEFAULT_SCHEDULE,
    BackupConfig,
    ScheduleConfig,
    load_config,
    normalize_range,
    normalize_retention,
    normalize_schedule,
    normalize_upload_mode,
    resolve_dir,
    to_posix,
    validate_path,
)


class TestResolveDir:
    def test_expands_home_shorthand(self):
        resolved = resolve_dir("~/clawd")

        assert os.path.isabs(resolved)
        assert resolved.endswith("clawd")
        assert resolved.startswith(str(Path.home()))

    def test_bare_tilde_is_home(self):
        assert resolve_dir("~") == os.path.abspath(str(Path.home()))

    def test_other_user_shorthand_is_not_expanded(self):
        resolved = resolve_dir("~other/clawd")

        assert os.path.isabs(resolved)
        assert resolved.endswith(os.path.join("~other", "clawd"))

    def test_relative_path_becomes_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert resolve_dir("  backups  ") == os.path.join(os.getcwd(), "backups")

    def test_blank_and_non_string_unchanged(self):
        assert resolve_dir("   ") == "   "
        assert resolve_dir(None) is None

    def test_to_posix(self):
        assert to_posix(os.sep.join(["", "a", "b"])) == "/a/b"
        assert to_posix(None) is None


class TestNormalizers:
    def test_schedule_accepts_known_values(self):
        assert normalize_schedule("launchd") == "launchd"
        assert normalize_schedule(" CRON ") == "cron"
        assert normalize_schedule("none") == "none"

    def test_schedule_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize_schedule("daily") == DEFAULT_SCHEDULE
        assert 'Unknown schedule "daily"' in caplog.text

    def test_schedule_blank_falls_back_silently(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize_schedule("") == DEFAULT_SCHEDULE
        assert caplog.text == ""

    def test_upload_mode(self):
        assert normalize_upload_mode("rclone") == "rclone"
        assert normalize_upload_mode(" LOCAL-ONLY ") == "local-only"
        assert normalize_upload_mode("s3") == "rclone"
        assert normalize_upload_mode(None) == "rclone"

    def test_hour_out_of_range_uses_default(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert normalize_range("25", 11, 0, 23, "schedule hour") == 11
        assert 'Invalid schedule hour "25"' in caplog.text

    def test_minute_in_range_is_accepted(self):
        assert normalize_range("30", 0, 0, 59, "schedule minute") == 30

    def test_range_non_digits(self):
        assert normalize_range("abc", 11, 0, 23, "hour") == 11
        assert normalize_range("23h", 11, 0, 23, "hour") == 23

    def test_retention_keeps_digits_only(self):
        assert normalize_retention("14 days") == 14
        assert normalize_retention("") == 7
        assert normalize_retention(None) == 7
        assert normalize_retention(0) == 0


class TestBackupConfig:
    def test_defaults_live_under_home(self):
        config = BackupConfig()
        home = to_posix(str(Path.home()))

        assert config.project_dir == f"{home}/clawd"
        assert config.source_dir == f"{home}/clawd/memory"
        assert config.local_backup_dir == f"{home}/clawd/MoltBackups/Memory"
        assert config.retention_days == 7
        assert config.upload_mode == "rclone"
        assert config.remote_target == "googleDrive:MoltBackups/Memory/"

    def test_blank_fields_fall_back_to_defaults(self):
        config = BackupConfig(project_dir="", rclone_remote="  ", retention_days="")

        assert config.project_dir == BackupConfig().project_dir
        assert config.rclone_remote == "googleDrive:"
        assert config.retention_days == 7

    def test_paths_are_resolved(self, tmp_path):
        config = BackupConfig(local_backup_dir="~/somewhere/../backups")

        assert config.local_backup_dir == to_posix(str(Path.home() / "backups"))
        assert config.log_file.endswith("/backups/backup.log")
        assert config.lock_dir.endswith("/backups/.lock")

    def test_unknown_upload_mode_falls_back(self):
        assert BackupConfig(upload_mode="ftp").upload_mode == "rclone"

    def test_is_immutable(self):
        config = BackupConfig()

        with pytest.raises(ValidationError):
            config.retention_days = 30

    def test_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            BackupConfig(gdrive_remote="x:")


class TestScheduleConfig:
    def test_normalizes_inputs(self):
        schedule = ScheduleConfig(type="CRON", hour="25", minute="30")

        assert schedule.type == "cron"
        assert schedule.hour == 11
        assert schedule.minute == 30

    def test_defaults(self):
        schedule = ScheduleConfig()

        assert schedule.type == DEFAULT_SCHEDULE
        assert (schedule.hour, schedule.minute) == (11, 0)


class TestLoadConfig:
    def test_loads_backup_and_schedule(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "project_dir: ~/clawd\n"
            "retention_days: 30\n"
            "upload_mode: local-only\n"
            "schedule:\n"
            "  type: none\n"
            "  hour: 5\n"
        )

        settings = load_config(str(config_file))

        assert settings.backup.project_dir.startswith(to_posix(str(Path.home())))
        assert settings.backup.retention_days == 30
        assert settings.backup.upload_mode == "local-only"
        assert settings.schedule.type == "none"
        assert settings.schedule.hour == 5
        assert settings.schedule.minute == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_empty_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        with pytest.raises(ValueError, match="empty"):
            load_config(str(config_file))

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("project_dir: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config(str(config_file))

    def test_unknown_key(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("gdrive_dest: x/\n")

        with pytest.raises(ValueError, match="validation error"):
            load_config(str(config_file))


def test_validate_path_warns_but_returns(tmp_path, caplog):
    missing = str(tmp_path / "missing")

    with caplog.at_level(logging.WARNING):
        assert validate_path("Project dir", missing) == missing
        assert validate_path("Here", str(tmp_path)) == str(tmp_path)

    assert caplog.text.count("does not exist") == 1
    assert [r.getMessage() for r in caplog.records] == [f'"Project dir" does not exist: {missing}']
