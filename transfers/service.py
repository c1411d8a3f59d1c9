"""Persists transfer matching results through a transaction store."""

from typing import List, Optional

from models.transaction import Transaction
from models.transfer_match import TransferMatchResult
from services.interfaces import TransactionStore
from transfers.matching import TransferMatcher
from logger import get_logger

logger = get_logger()


class TransferService:
    """Runs the matcher over the stored ledger and writes back what changed.

    Each operation writes its changes with a single batch_update, so both
    sides of a link change together.

    Args:
        store: Transaction store holding the ledger.
        matcher: Matching heuristics.
    """

    def __init__(self, store: TransactionStore, matcher: TransferMatcher):
        self.store = store
        self.matcher = matcher

    def _persist(self, before: List[Transaction], after: List[Transaction]) -> List[Transaction]:
        previous = {t.id: t for t in before}
        changed = [t for t in after if previous.get(t.id) != t]
        if changed:
            self.store.batch_update(changed)
        return changed

    def auto_match(self) -> List[Transaction]:
        """Apply automatic transfer matches across the whole ledger.

        Returns:
            Transactions that were linked.
        """
        transactions = self.store.find_all()
        changed = self._persist(transactions, self.matcher.auto_match_transfers(transactions))
        logger.info(f"Linked {len(changed) // 2} transfer pair(s)")
        return changed

    def auto_match_same_account(self) -> List[Transaction]:
        """Link same-account charge/reversal pairs."""
        transactions = self.store.find_all()
        return self._persist(
            transactions, self.matcher.auto_match_same_account_transactions(transactions)
        )

    def suggest_matches(self, transaction_id: Optional[str] = None) -> TransferMatchResult:
        """Relaxed candidates for a user to choose from.

        Args:
            transaction_id: Restrict suggestions to pairs involving this record.
        """
        result = self.matcher.find_manual_transfer_matches(self.store.find_all())
        if transaction_id is not None:
            result.matches = [
                m for m in result.matches if transaction_id in (m.source_id, m.target_id)
            ]
        return result

    def match(self, source_id: str, target_id: str) -> List[Transaction]:
        """Link two records manually.

        Raises:
            TransferMatchError: If the pair is not allowed.
        """
        transactions = self.store.find_all()
        return self._persist(
            transactions,
            self.matcher.manually_match_transfers(transactions, source_id, target_id),
        )

    def unmatch(self, source_id: str, target_id: Optional[str] = None) -> List[Transaction]:
        transactions = self.store.find_all()
        return self._persist(
            transactions, self.matcher.unmatch_transfers(transactions, source_id, target_id)
        )
