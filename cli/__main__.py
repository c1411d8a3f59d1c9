#!/usr/bin/env python3
"""
Ledgerline CLI - maintenance commands for the transaction ledger.

Usage:
    python -m cli <command> <subcommand> [options]

Commands:
    migrate      Database migrations
    rules        Inspect and manage classification rules
    transfers    Match and unmatch transfer pairs
    maintenance  Link repair, type backfill and deletion

Examples:
    python -m cli migrate apply
    python -m cli rules list
    python -m cli transfers auto
    python -m cli transfers match <source-id> <target-id>
    python -m cli maintenance repair-links
"""

import sys
import argparse
from cli import maintenance, migrate, rules, transfers
from config import load_config
from services.base import Services
from db.manager import DatabaseManager
from logger import setup_logging


def main():
    """Main CLI entry point with subcommands."""
    parser = argparse.ArgumentParser(
        prog="cli",
        description="Ledgerline - transaction classification and transfer matching",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # Create subparsers for each command
    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
        required=True,
    )

    # Register each command's subparser
    rules.setup_parser(subparsers)
    transfers.setup_parser(subparsers)
    maintenance.setup_parser(subparsers)
    migrate.setup_parser(subparsers)

    # Parse arguments and execute
    args = parser.parse_args()

    if hasattr(args, "func"):
        try:
            config = load_config()
            setup_logging(config)

            # Migrate commands work on the raw database; the rest use services
            if args.command == "migrate":
                args.func(args, DatabaseManager(config))
            else:
                args.func(args, Services(config))
        except Exception as e:
            print(f"Error: {e}")
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
