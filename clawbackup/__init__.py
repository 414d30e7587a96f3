"""
clawbackup: scheduled archive-and-upload backups for a clawd project.

This package generates a standalone backup launcher (plus an optional
launchd/cron schedule) and provides the engine that launcher runs: stage,
archive, checksum, upload via rclone and prune old copies.
"""

__version__ = "0.2.0"
