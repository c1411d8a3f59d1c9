from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union
import re
import uuid

from dateutil import parser as date_parser

INTERNAL_TRANSFER = "Internal Transfer"
UNCATEGORIZED = "Uncategorized"
TRANSACTION_TYPES = ("income", "expense", "transfer")

_CENTS = Decimal("0.01")


def to_amount(value: Union[str, int, float, Decimal]) -> Decimal:
    """Convert a raw amount to a signed Decimal rounded to cents.

    Accepts "$1,234.56", "(12.00)" (negative) and plain numbers.
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    else:
        text = str(value).strip()
        negative = text.startswith("(") and text.endswith(")")
        text = re.sub(r"[$,\s()]", "", text)
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}")
        if negative:
            amount = -abs(amount)
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Amount out of range: {value!r}")


def to_date(value: Union[str, date, datetime]) -> date:
    """Convert a raw date (or ISO/locale string) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value).strip()).date()
    except (ValueError, OverflowError):
        raise ValueError(f"Invalid date: {value!r}")


@dataclass
class Transaction:
    id: str
    transaction_date: date
    amount: Decimal  # signed; negative = outflow
    description: str
    account: str  # account id or display name
    notes: str = ""
    category: str = UNCATEGORIZED
    subcategory: Optional[str] = None
    type: str = "expense"  # 'income', 'expense', or 'transfer'
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
    is_verified: bool = False
    linked_transaction_id: Optional[str] = None  # counterpart of a matched pair
    original_currency: Optional[str] = None
    exchange_rate: Optional[Decimal] = None

    @staticmethod
    def infer_type(amount: Decimal) -> str:
        """Type implied by the sign of the amount alone."""
        return "income" if amount >= 0 else "expense"

    @classmethod
    def from_row(cls, row: dict, account: str) -> "Transaction":
        """Build an unclassified Transaction from a parsed statement row.

        Args:
            row: Mapping with 'date', 'description', 'amount' and optional 'notes'.
            account: Account id or name the statement belongs to.

        Raises:
            ValueError: If date, description or amount is missing or invalid.
        """
        description = str(row.get("description") or "").strip()
        if row.get("date") in (None, "") or not description:
            raise ValueError(f"Row is missing date or description: {row!r}")
        if row.get("amount") in (None, ""):
            raise ValueError(f"Row is missing amount: {row!r}")

        amount = to_amount(row["amount"])
        return cls(
            id=str(uuid.uuid4()),
            transaction_date=to_date(row["date"]),
            amount=amount,
            description=description,
            account=account,
            notes=str(row.get("notes") or "").strip(),
            type=cls.infer_type(amount),
            original_currency=row.get("original_currency"),
        )

    def correlation_key(self) -> str:
        """Content-derived key used to pair oracle answers with records."""
        return f"{self.description}|{self.amount}|{self.transaction_date.isoformat()}"

    def enforce_type_invariant(self) -> bool:
        """Force type 'transfer' for Internal Transfer records.

        Returns:
            True if the record was changed.
        """
        if self.category == INTERNAL_TRANSFER and self.type != "transfer":
            self.type = "transfer"
            return True
        return False

    def to_dict(self) -> dict:
        """Convert transaction to dictionary for database storage."""
        return {
            "id": self.id,
            "transaction_date": self.transaction_date.isoformat(),
            "amount": float(self.amount),
            "description": self.description,
            "account": self.account,
            "notes": self.notes,
            "category": self.category,
            "subcategory": self.subcategory,
            "transaction_type": self.type,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "is_verified": 1 if self.is_verified else 0,
            "linked_transaction_id": self.linked_transaction_id,
            "original_currency": self.original_currency,
            "exchange_rate": (
                float(self.exchange_rate) if self.exchange_rate is not None else None
            ),
        }
