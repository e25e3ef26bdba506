#!/usr/bin/env python3
"""HabitForge application entry point.

This module provides a unified entry point for both interfaces:
- CLI: Command-line interface
- Web: RESTful HTTP API

Usage:
    python -m habitforge.main cli list-habits      # Use CLI
    python -m habitforge.main web [--port 8080]    # Start web server
    habitforge -d ~/habits cli play-tags --all     # Installed console script
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn, Optional

logger = logging.getLogger(__name__)

DEFAULT_INTERFACE = "web"


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the unified argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="HabitForge - Habit tracking with notes and tag playback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  habitforge web --port 8080                 Start web server on port 8080
  habitforge cli new-user --name Ada         Create a user
  habitforge cli new-habit "No sugar"        Create a habit for the newest user
  habitforge cli hit <habit-id>              Record a hit
  habitforge cli play-tags --all             Play every note tag
""",
    )

    parser.add_argument(
        "-d", "--config-dir",
        type=Path,
        default=None,
        help="Custom configuration directory (default: ~/.config/habitforge/)"
    )

    # Create subparsers for each interface
    subparsers = parser.add_subparsers(dest="interface", help="Interface to use")

    from habitforge.cli import add_cli_subparser
    add_cli_subparser(subparsers)

    from habitforge.web import add_web_subparser
    add_web_subparser(subparsers)

    return parser


def get_default_interface(config_dir: Optional[Path]) -> str:
    """Interface from the config file's default_interface key, else web."""
    from habitforge.core.config import Config
    config = Config(config_dir=config_dir)
    configured = config.get("default_interface")
    if configured in ("cli", "web"):
        return configured
    return DEFAULT_INTERFACE


def main(argv: Optional[list] = None) -> NoReturn:
    """Main entry point for HabitForge.

    Parses arguments and dispatches to the appropriate interface.
    """
    configure_logging()
    parser = create_parser()
    argv = sys.argv[1:] if argv is None else argv
    args = parser.parse_args(argv)

    # If no interface specified, use default from config
    if not args.interface:
        default_interface = get_default_interface(args.config_dir)
        logger.info(f"No interface specified, using default: {default_interface}")

        # Insert the interface after any global options
        new_argv = list(argv)
        insert_pos = 0
        for i, arg in enumerate(argv):
            if arg in ["-d", "--config-dir"]:
                insert_pos = i + 2  # Skip the option and its value
            elif arg.startswith("-"):
                continue
            else:
                break

        new_argv.insert(insert_pos, default_interface)
        args = parser.parse_args(new_argv)

    # Dispatch to appropriate interface
    if args.interface == "cli":
        from habitforge.cli import run as run_cli
        exit_code = run_cli(args.config_dir, args)
    elif args.interface == "web":
        from habitforge.web import run as run_web
        exit_code = run_web(args.config_dir, args)
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
