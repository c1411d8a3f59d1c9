"""Account lookups used by rule evaluation and transfer matching.

Transactions refer to their account either by id or by display name; both
forms are resolved here so the rest of the pipeline can compare them
uniformly.
"""

from typing import Iterable, List, Optional

from models.account import Account
from logger import get_logger

logger = get_logger()


class AccountDirectory:
    """Read-only view of the caller's accounts."""

    def __init__(self, accounts: Optional[Iterable[Account]] = None, base_currency: str = "USD"):
        """Initialize the directory.

        Args:
            accounts: Known accounts. Unknown references are still usable;
                     they compare by their raw text and use the base currency.
            base_currency: Currency treated as domestic.
        """
        self.accounts: List[Account] = list(accounts or [])
        self.base_currency = base_currency

    def find_all(self) -> List[Account]:
        return list(self.accounts)

    def find(self, account_id: str) -> Optional[Account]:
        return next((a for a in self.accounts if a.id == account_id), None)

    def find_by_name(self, name: str) -> Optional[Account]:
        lowered = name.lower()
        return next((a for a in self.accounts if a.name.lower() == lowered), None)

    def resolve(self, ref: Optional[str]) -> Optional[Account]:
        """Find an account by id first, then by name."""
        if not ref:
            return None
        return self.find(ref) or self.find_by_name(ref)

    def canonical(self, ref: Optional[str]) -> Optional[str]:
        """A comparable identity for an account reference."""
        if ref is None:
            return None
        account = self.resolve(ref)
        return account.id if account else str(ref).strip().lower()

    def display_name(self, ref: str) -> str:
        account = self.resolve(ref)
        return account.name if account else ref

    def same_account(self, ref_a: Optional[str], ref_b: Optional[str]) -> bool:
        return self.canonical(ref_a) == self.canonical(ref_b)

    def currency_of(self, ref: Optional[str]) -> str:
        """Currency of the account, defaulting to the base currency."""
        account = self.resolve(ref)
        if account is None:
            logger.debug(f"Account not found for reference {ref!r}, assuming {self.base_currency}")
            return self.base_currency
        return account.currency or self.base_currency
