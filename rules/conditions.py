"""Evaluation of individual rule conditions.

A condition that cannot be evaluated (missing field, wrong value type, bad
regular expression) is simply false; nothing here raises.
"""

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from models.rule import RuleCondition
from models.transaction import Transaction, to_date
from services.accounts import AccountDirectory
from logger import get_logger

logger = get_logger()


def field_value(
    transaction: Transaction, field: str, accounts: Optional[AccountDirectory] = None
) -> Any:
    """Value of a transaction field as rules see it."""
    if field == "description":
        return transaction.description
    if field == "amount":
        # Amount comparisons use the absolute value
        return abs(transaction.amount) if transaction.amount is not None else None
    if field == "account":
        if accounts is not None and transaction.account:
            return accounts.display_name(transaction.account)
        return transaction.account
    if field == "date":
        return transaction.transaction_date
    return None


def evaluate_condition(
    transaction: Transaction,
    condition: RuleCondition,
    accounts: Optional[AccountDirectory] = None,
) -> bool:
    value = field_value(transaction, condition.field, accounts)
    if value is None:
        return False

    compare_to = condition.value
    if condition.field == "account" and accounts is not None and isinstance(compare_to, str):
        # Rule may name the account by id or by display name
        compare_to = accounts.display_name(compare_to)

    if isinstance(value, str):
        return _evaluate_text(value, condition.operator, compare_to, condition.case_sensitive)
    if isinstance(value, Decimal):
        return _evaluate_ordered(
            value, condition.operator, _as_decimal(compare_to), _as_decimal(condition.value_end)
        )
    if isinstance(value, date):
        return _evaluate_ordered(
            value, condition.operator, _as_date(compare_to), _as_date(condition.value_end)
        )
    return False


def _evaluate_text(value: str, operator: str, expected: Any, case_sensitive: bool) -> bool:
    if not isinstance(expected, str):
        return False

    if operator == "regex":
        flags = 0 if case_sensitive else re.IGNORECASE
        try:
            return re.search(expected, value, flags) is not None
        except re.error as e:
            logger.debug(f"Invalid rule pattern {expected!r}: {e}")
            return False

    if not case_sensitive:
        value = value.lower()
        expected = expected.lower()

    if operator == "equals":
        return value == expected
    if operator == "contains":
        return expected in value
    if operator == "starts_with":
        return value.startswith(expected)
    if operator == "ends_with":
        return value.endswith(expected)
    return False


def _evaluate_ordered(value, operator: str, expected, expected_end) -> bool:
    if expected is None:
        return False
    if operator == "equals":
        return value == expected
    if operator == "greater_than":
        return value > expected
    if operator == "less_than":
        return value < expected
    if operator == "between":
        return expected_end is not None and expected <= value <= expected_end
    return False


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    try:
        return to_date(value)
    except ValueError:
        return None
