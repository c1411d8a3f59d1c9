"""Keeps transfer links consistent when transactions are deleted."""

from typing import Iterable, List

from models.transaction import Transaction
from services.interfaces import TransactionStore
from transfers.notes import unlinked
from logger import get_logger

logger = get_logger()


class DeletionCascade:
    """Deletes transactions and dissolves the links that pointed at them.

    A counterpart keeps its notes apart from the match annotation.
    """

    def __init__(self, store: TransactionStore):
        self.store = store

    def _counterparts(self, deleted_ids: set) -> List[Transaction]:
        return [
            t
            for t in self.store.find_all()
            if t.linked_transaction_id in deleted_ids and t.id not in deleted_ids
        ]

    def delete_transaction(self, transaction_id: str) -> bool:
        """Delete one transaction, unlinking anything linked to it.

        Returns:
            True if the transaction existed.
        """
        if self.store.find(transaction_id) is None:
            return False

        counterparts = self._counterparts({transaction_id})
        if counterparts:
            self.store.batch_update([unlinked(t) for t in counterparts])
            logger.info(
                f"Unlinked {len(counterparts)} counterpart(s) of deleted transaction {transaction_id}"
            )
        return self.store.delete(transaction_id)

    def delete_transactions(self, transaction_ids: Iterable[str]) -> int:
        """Delete several transactions, unlinking survivors that pointed at them.

        Returns:
            Number of transactions deleted.
        """
        ids = set(transaction_ids)
        if not ids:
            return 0

        counterparts = self._counterparts(ids)
        if counterparts:
            self.store.batch_update([unlinked(t) for t in counterparts])
            logger.info(f"Unlinked {len(counterparts)} counterpart(s) of deleted transactions")
        deleted = self.store.bulk_delete(ids)
        logger.info(f"Deleted {deleted} transaction(s)")
        return deleted

    def repair_dangling_links(self) -> int:
        """Clear links whose counterpart is missing or does not link back.

        Running it again right after changes nothing.

        Returns:
            Number of transactions repaired.
        """
        transactions = self.store.find_all()
        by_id = {t.id: t for t in transactions}

        broken = []
        for transaction in transactions:
            partner_id = transaction.linked_transaction_id
            if not partner_id:
                continue
            partner = by_id.get(partner_id)
            if partner is None or partner.linked_transaction_id != transaction.id:
                broken.append(unlinked(transaction))

        if not broken:
            logger.info("Link repair: no dangling links")
            return 0

        self.store.batch_update(broken)
        logger.info(f"Link repair: cleared {len(broken)} dangling link(s)")
        return len(broken)
