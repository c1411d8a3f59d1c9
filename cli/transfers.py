#!/usr/bin/env python3

import sys
from errors import TransferMatchError
from logger import get_logger

logger = get_logger()


def cmd_list(args, services):
    """List matched transfer pairs and unmatched transfers."""
    transactions = services.transactions.find_all()
    by_id = {t.id: t for t in transactions}

    matches = services.matcher.get_matched_transfers(transactions)
    logger.info(f"\nMatched transfers ({len(matches)}):")
    logger.info("=" * 80)
    for match in matches:
        source = by_id[match.source_id]
        target = by_id[match.target_id]
        logger.info(
            f"{source.transaction_date} {source.amount:>10} {source.description[:30]:<30} <-> "
            f"{target.transaction_date} {target.amount:>10} {target.description[:30]}"
        )
        logger.info(f"  {match.match_type}, {match.date_difference} day(s) apart")

    unmatched = services.matcher.get_unmatched_transfers(transactions)
    logger.info(f"\nUnmatched transfers ({len(unmatched)}):")
    logger.info("=" * 80)
    for transaction in unmatched:
        logger.info(
            f"{transaction.id}  {transaction.transaction_date} {transaction.amount:>10} "
            f"{transaction.description[:40]}"
        )


def cmd_auto(args, services):
    """Run automatic transfer matching over the ledger."""
    linked = services.transfers.auto_match()
    if args.same_account:
        linked += services.transfers.auto_match_same_account()
    logger.info(f"✓ Linked {len(linked) // 2} pair(s)")


def cmd_suggest(args, services):
    """Show relaxed match candidates, optionally for one transaction."""
    result = services.transfers.suggest_matches(args.transaction_id)
    if not result.matches:
        logger.info("No candidates found.")
        return

    for match in sorted(result.matches, key=lambda m: m.confidence, reverse=True):
        logger.info(f"{match.source_id} <-> {match.target_id}  ({match.confidence:.2f})")
        logger.info(f"  {match.reasoning}")


def cmd_match(args, services):
    """Manually link two transactions."""
    try:
        services.transfers.match(args.source_id, args.target_id)
    except TransferMatchError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"✓ Linked {args.source_id} <-> {args.target_id}")


def cmd_unmatch(args, services):
    """Remove a transfer link."""
    changed = services.transfers.unmatch(args.source_id, args.target_id)
    if not changed:
        logger.info("Nothing to unmatch.")
        return

    logger.info(f"✓ Unlinked {len(changed)} transaction(s)")


def setup_parser(subparsers):
    """Setup transfers subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "transfers",
        help="Match and unmatch transfer pairs",
        description="Link transfers between accounts",
    )

    transfers_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available transfer commands",
        dest="subcommand",
        required=True,
    )

    list_parser = transfers_subparsers.add_parser("list", help="List matched and unmatched transfers")
    list_parser.set_defaults(func=cmd_list)

    auto_parser = transfers_subparsers.add_parser("auto", help="Run automatic matching")
    auto_parser.add_argument(
        "--same-account",
        action="store_true",
        help="Also link charge/reversal pairs within one account",
    )
    auto_parser.set_defaults(func=cmd_auto)

    suggest_parser = transfers_subparsers.add_parser("suggest", help="Show manual match candidates")
    suggest_parser.add_argument("transaction_id", nargs="?", help="Only pairs involving this transaction")
    suggest_parser.set_defaults(func=cmd_suggest)

    match_parser = transfers_subparsers.add_parser("match", help="Manually link two transactions")
    match_parser.add_argument("source_id", help="Transaction ID")
    match_parser.add_argument("target_id", help="Transaction ID")
    match_parser.set_defaults(func=cmd_match)

    unmatch_parser = transfers_subparsers.add_parser("unmatch", help="Remove a link")
    unmatch_parser.add_argument("source_id", help="Transaction ID")
    unmatch_parser.add_argument("target_id", nargs="?", help="Counterpart (default: current link)")
    unmatch_parser.set_defaults(func=cmd_unmatch)
