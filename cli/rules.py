#!/usr/bin/env python3

import sys
import argparse
from rules.engine import AUTO_RULE_PRIORITY, USER_RULE_OPERATORS, USER_RULE_PRIORITY
from logger import get_logger

logger = get_logger()

RULE_KINDS = {AUTO_RULE_PRIORITY: "auto", USER_RULE_PRIORITY: "user"}


def cmd_list(args, services):
    """List classification rules in evaluation order."""
    rules = services.rules.find_all()
    if not args.all:
        rules = [r for r in rules if r.is_active]

    if not rules:
        logger.info("No rules found.")
        return

    logger.info("\nRules:")
    logger.info("=" * 80)
    for rule in rules:
        kind = RULE_KINDS.get(rule.priority, "detection")
        state = "" if rule.is_active else " (inactive)"
        logger.info(f"ID: {rule.id}{state}")
        logger.info(f"Name: {rule.name} [{kind}, priority {rule.priority}]")
        for condition in rule.conditions:
            logger.info(f"  if {condition.field} {condition.operator} {condition.value!r}")
        target = rule.action.category
        if rule.action.subcategory:
            target += f" / {rule.action.subcategory}"
        logger.info(f"  then {target}")
        logger.info("-" * 80)

    logger.info(f"\nTotal rules: {len(rules)}")


def cmd_stats(args, services):
    """Show rule counts."""
    stats = services.rule_engine.get_stats()
    for key in ("total", "active", "inactive", "auto", "user", "detection"):
        logger.info(f"{key.capitalize()}: {stats[key]}")


def cmd_add(args, services):
    """Create or update a user rule for an account and description."""
    try:
        rule = services.rule_engine.create_user_rule(
            args.account,
            args.description,
            args.category,
            args.subcategory,
            operator=args.operator,
            forced_type=args.type,
        )
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"✓ Rule saved: {rule.name} (ID: {rule.id})")


def cmd_seed_transfers(args, services):
    """Create the transfer detection and bank fee rules."""
    created = services.rule_engine.initialize_transfer_rules()
    logger.info(f"✓ Created {created} transfer detection rule(s)")


def cmd_deactivate(args, services):
    """Deactivate a rule."""
    if not services.rule_engine.deactivate_rule(args.rule_id):
        logger.error(f"Rule '{args.rule_id}' not found.")
        sys.exit(1)

    logger.info(f"✓ Rule {args.rule_id} deactivated")


def setup_parser(subparsers):
    """Setup rules subcommand parser.

    Args:
        subparsers: The subparsers object from the main CLI
    """
    parser = subparsers.add_parser(
        "rules",
        help="Inspect and manage classification rules",
        description="List, add and deactivate classification rules",
    )

    rules_subparsers = parser.add_subparsers(
        title="subcommands",
        description="Available rule commands",
        dest="subcommand",
        required=True,
    )

    list_parser = rules_subparsers.add_parser("list", help="List rules")
    list_parser.add_argument("--all", action="store_true", help="Include inactive rules")
    list_parser.set_defaults(func=cmd_list)

    stats_parser = rules_subparsers.add_parser("stats", help="Show rule counts")
    stats_parser.set_defaults(func=cmd_stats)

    add_parser = rules_subparsers.add_parser(
        "add",
        help="Add a user rule",
        epilog="""
Examples:
  python -m cli rules add Checking "COSTCO" "Food & Dining" --subcategory Groceries
  python -m cli rules add Checking "SHELL" Transportation --operator contains
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_parser.add_argument("account", help="Account id or name")
    add_parser.add_argument("description", help="Description to match")
    add_parser.add_argument("category", help="Category to assign")
    add_parser.add_argument("--subcategory", help="Subcategory to assign")
    add_parser.add_argument(
        "--operator",
        choices=USER_RULE_OPERATORS,
        default="equals",
        help="How the description is compared (default: equals)",
    )
    add_parser.add_argument(
        "--type",
        choices=("income", "expense", "transfer"),
        help="Force this transaction type",
    )
    add_parser.set_defaults(func=cmd_add)

    seed_parser = rules_subparsers.add_parser(
        "seed-transfers", help="Create transfer detection and bank fee rules"
    )
    seed_parser.set_defaults(func=cmd_seed_transfers)

    deactivate_parser = rules_subparsers.add_parser("deactivate", help="Deactivate a rule")
    deactivate_parser.add_argument("rule_id", help="Rule ID")
    deactivate_parser.set_defaults(func=cmd_deactivate)
