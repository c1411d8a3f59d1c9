"""Match annotations written into transaction notes.

The annotation is the only record of how a link was made: an automatic match
carries a confidence stamp, a manual match does not.
"""

import re
from dataclasses import replace
from typing import Optional

from models.transaction import Transaction

AUTO_TRANSFER_PREFIX = "[Matched Transfer:"
SAME_ACCOUNT_PREFIX = "[Matched Transaction:"
MANUAL_TRANSFER_NOTE = "[Manual Transfer Match]"

_ANNOTATION_PATTERNS = (
    re.compile(r"\n?\[Matched Transfer: .+?\]"),
    re.compile(r"\n?\[Manual Transfer Match\]"),
    re.compile(r"\n?\[Matched Transaction: .+?\]"),
)


def auto_transfer_note(confidence: float) -> str:
    return f"[Matched Transfer: {confidence:.2f} confidence]"


def same_account_note(confidence: float) -> str:
    return f"[Matched Transaction: {confidence:.2f} confidence]"


def append_note(notes: Optional[str], annotation: str) -> str:
    """Append an annotation on its own line."""
    return f"{notes}\n{annotation}" if notes else annotation


def strip_match_notes(notes: Optional[str]) -> str:
    """Remove match annotations, leaving any other text intact."""
    if not notes:
        return ""
    for pattern in _ANNOTATION_PATTERNS:
        notes = pattern.sub("", notes)
    return notes.strip()


def is_auto_linked(transaction: Transaction) -> bool:
    notes = transaction.notes or ""
    return AUTO_TRANSFER_PREFIX in notes or SAME_ACCOUNT_PREFIX in notes


def is_manual_match(transaction: Transaction) -> bool:
    """A linked record without an automatic stamp was linked by the user."""
    return bool(transaction.linked_transaction_id) and not is_auto_linked(transaction)


def unlinked(transaction: Transaction) -> Transaction:
    """Copy of the record with its link cleared and match annotations removed."""
    return replace(
        transaction,
        linked_transaction_id=None,
        notes=strip_match_notes(transaction.notes),
    )
