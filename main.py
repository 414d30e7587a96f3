#!/usr/bin/env python3
"""
clawbackup: scheduled archive-and-upload backups for a clawd project.

Main entry point: ``setup`` writes the backup launcher (and scheduler
descriptor), ``run`` performs one backup cycle from a YAML config.
"""

import argparse
import sys

from clawbackup.backup_manager import run_backup
from clawbackup.config import AppConfig, load_config
from clawbackup.logging_setup import setup_logging
from clawbackup.schedule import ScheduleBuilder
from clawbackup.scriptgen import GenerationResult, generate
from clawbackup.wizard import Prompter, collect_settings, default_settings


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Generate and run clawd project backups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py setup                     # Interactive setup wizard
  python main.py setup --defaults          # Accept every default, no prompts
  python main.py setup --config answers.yaml
  python main.py run --config config.yaml  # Run one backup cycle now
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    setup_parser = subparsers.add_parser("setup", help="Write the backup launcher")
    setup_parser.add_argument(
        "--defaults",
        action="store_true",
        help="Accept all defaults and skip prompting",
    )
    setup_parser.add_argument(
        "--config",
        help="YAML file with setup answers (implies no prompting)",
    )
    setup_parser.add_argument(
        "--script-path",
        help="Where to write the launcher (default: <project>/scripts/backup_enhanced.py)",
    )

    run_parser = subparsers.add_parser("run", help="Run one backup cycle")
    run_parser.add_argument("--config", required=True, help="YAML configuration file")

    return parser.parse_args(argv)


def print_next_steps(settings: AppConfig, result: GenerationResult) -> None:
    """Print scheduler registration instructions and follow-up steps."""
    schedule = settings.schedule
    print()
    for line in ScheduleBuilder.install_instructions(
        schedule.type,
        str(result.script_path),
        schedule.hour,
        schedule.minute,
        plist_path=str(result.plist_path) if result.plist_path else None,
    ):
        print(line)

    if schedule.type != "none":
        next_run = ScheduleBuilder.next_run_time(schedule.hour, schedule.minute)
        print(f"\nNext scheduled run: {next_run.strftime('%Y-%m-%d %H:%M')}")

    steps = [f"Test run: {result.script_path}"]
    if settings.backup.upload_mode == "rclone":
        steps.insert(0, "Ensure rclone is configured: rclone config")
    print("\nNext steps:")
    for number, step in enumerate(steps, 1):
        print(f"  {number}. {step}")


def run_setup(args: argparse.Namespace) -> int:
    """Resolve settings and write the launcher."""
    setup_logging()

    if args.config:
        settings = load_config(args.config)
    elif args.defaults:
        settings = default_settings()
    else:
        settings = collect_settings(Prompter())

    result = generate(settings.backup, settings.schedule, script_path=args.script_path)

    if not args.defaults:
        print_next_steps(settings, result)
    return 0


def main(argv=None) -> int:
    """Main application entry point."""
    args = parse_arguments(argv)

    try:
        if args.command == "setup":
            return run_setup(args)

        setup_logging()
        settings = load_config(args.config)
        return run_backup(settings.backup)

    except FileNotFoundError as e:
        print(f"ERROR: Configuration file error: {e}", file=sys.stderr)
        return 1

    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nINTERRUPTED: Setup interrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
