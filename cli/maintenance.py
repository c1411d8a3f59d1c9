#!/usr/bin/env python3

from services.backfill import backfill_transfer_types
from logger import get_logger

logger = get_logger()


def cmd_repair_links(args, services):
    """Clear links whose counterpart is gone or does not link back."""
    repaired = services.deletions.repair_dangling_links()
    logger.info(f"✓ Repaired {repaired} transaction(s)")


def cmd_backfill_types(args, services):
    """Set type 'transfer' on Internal Transfer records."""
    fixed = backfill_transfer_types(services.transactions)
    logger.info(f"✓ Corrected {fixed} transaction(s)")


def cmd_delete(args, services):
    """Delete transactions, unlinking their counterparts."""
    deleted = services.deletions.delete_transactions(args.transaction_ids)
    logger.info(f"✓ Deleted {deleted} transaction(s)")
    missing = len(set(args.transaction_ids)) - deleted
    if missing:
        logger.info(f"  ({missing} ID(s) not found)")


def setup_parser(subparsers):
    """Setup maintenance subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "maintenance",
        help="Ledger consistency tasks",
        description="Repair links, backfill types and delete transactions",
    )

    maintenance_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available maintenance commands",
        dest="subcommand",
        required=True,
    )

    repair_parser = maintenance_subparsers.add_parser(
        "repair-links", help="Clear dangling transfer links"
    )
    repair_parser.set_defaults(func=cmd_repair_links)

    backfill_parser = maintenance_subparsers.add_parser(
        "backfill-types", help="Force type 'transfer' on Internal Transfer records"
    )
    backfill_parser.set_defaults(func=cmd_backfill_types)

    delete_parser = maintenance_subparsers.add_parser("delete", help="Delete transactions")
    delete_parser.add_argument("transaction_ids", nargs="+", help="Transaction IDs")
    delete_parser.set_defaults(func=cmd_delete)
