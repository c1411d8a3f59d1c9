"""One-off data migrations over the transaction store."""

from services.interfaces import TransactionStore
from logger import get_logger

logger = get_logger()


def backfill_transfer_types(store: TransactionStore) -> int:
    """Set type 'transfer' on every Internal Transfer record that lacks it.

    Safe to run repeatedly; a second run changes nothing.

    Args:
        store: Transaction store to scan and fix.

    Returns:
        Number of transactions corrected.
    """
    fixed = [t for t in store.find_all() if t.enforce_type_invariant()]
    if not fixed:
        logger.info("Transfer type backfill: nothing to fix")
        return 0

    store.batch_update(fixed)
    logger.info(f"Transfer type backfill: corrected {len(fixed)} transaction(s)")
    return len(fixed)
