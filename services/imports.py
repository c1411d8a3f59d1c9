"""End-to-end import of parsed statement rows."""

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from errors import ImportCancelledError
from models.category import CategoryCatalog
from models.transaction import Transaction
from logger import get_logger

logger = get_logger()


@dataclass
class ImportSummary:
    transactions: List[Transaction] = field(default_factory=list)
    inserted: int = 0
    rule_matched: int = 0
    transfers_linked: int = 0
    cancelled: bool = False


def import_transactions(
    services,
    rows: List[dict],
    account: str,
    catalog: CategoryCatalog,
    cancel_event: Optional[threading.Event] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> ImportSummary:
    """Classify rows, store them and link any new transfer pairs.

    A cancelled import still stores the records classified before the stop.
    Transfer matching never fails the import.

    Args:
        services: Services container.
        rows: Parsed rows with 'date', 'description', 'amount', 'notes'.
        account: Account the rows belong to (id or display name).
        catalog: Categories available for classification.
        cancel_event: Set to stop before the next chunk.
        on_progress: Called with (classified, total) after each chunk.

    Returns:
        ImportSummary describing what was stored.
    """
    summary = ImportSummary()
    logger.info(f"Importing {len(rows)} row(s) into {services.accounts.display_name(account)}")

    try:
        classified = services.categorizer.process_transactions(
            rows, account, catalog, cancel_event=cancel_event, on_progress=on_progress
        )
    except ImportCancelledError as e:
        classified = e.completed
        summary.cancelled = True
        logger.info(f"Import cancelled; keeping {len(classified)} classified transaction(s)")

    summary.transactions = classified
    summary.rule_matched = sum(
        1 for t in classified if t.reasoning and t.reasoning.startswith("Matched rule:")
    )
    summary.inserted = services.transactions.bulk_create(classified)
    logger.info(f"Inserted {summary.inserted} transaction(s)")
    if summary.inserted < len(classified):
        logger.info(f"  ({len(classified) - summary.inserted} duplicate transaction(s) skipped)")

    if summary.inserted and not summary.cancelled:
        try:
            linked = services.transfers.auto_match()
            summary.transfers_linked = len(linked) // 2
        except Exception as e:
            logger.warning(f"Transfer matching failed (import was successful): {e}")

    return summary
