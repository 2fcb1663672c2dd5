#!/usr/bin/env python3
"""
Ladder Tournament CLI

Usage:
    python -m ladder.cli <command> [options]

Commands:
    db          Database operations (init)
    tournament  Tournament inspection (list, state, buckets)

Environment:
    DATABASE_URL    SQLAlchemy async connection string
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""
import sys
import argparse
import logging
from typing import Optional

from ladder.cli.db_commands import DbCommand
from ladder.cli.tournament_commands import TournamentCommand


def setup_logging(level: str = "INFO") -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ladder",
        description="Ladder Tournament Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s db init
  %(prog)s tournament list
  %(prog)s tournament state --id 3
  %(prog)s tournament buckets --id 3
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what db init would do without executing (tournament commands only read)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Database commands
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_subparsers = db_parser.add_subparsers(dest="db_action")

    # db init
    db_subparsers.add_parser("init", help="Create missing tables")

    # Tournament commands
    tournament_parser = subparsers.add_parser("tournament", help="Tournament inspection")
    tournament_subparsers = tournament_parser.add_subparsers(dest="tournament_action")

    # tournament list
    tournament_subparsers.add_parser("list", help="List tournaments")

    # tournament state
    state_parser = tournament_subparsers.add_parser("state", help="Show standings and the latest stage")
    state_parser.add_argument("--id", "-i", type=int, required=True, help="Tournament ID")

    # tournament buckets
    buckets_parser = tournament_subparsers.add_parser("buckets", help="Show player ranks and buckets")
    buckets_parser.add_argument("--id", "-i", type=int, required=True, help="Tournament ID")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 1

    setup_logging(parsed.log_level)

    command_map = {
        "db": DbCommand,
        "tournament": TournamentCommand,
    }

    if parsed.command in command_map:
        handler = command_map[parsed.command](dry_run=parsed.dry_run)
        return handler.execute(parsed)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
