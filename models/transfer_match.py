"""Transfer match models.

A match is never stored on its own: applying it writes the link fields and a
note onto the two transactions.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from models.transaction import Transaction


@dataclass
class TransferMatch:
    source_id: str
    target_id: str
    confidence: float
    match_type: str  # 'exact', 'approximate' or 'manual'
    date_difference: int
    amount_difference: Decimal
    reasoning: Optional[str] = None
    is_verified: bool = False

    @property
    def pair_key(self) -> tuple:
        """Order-independent identity of the pair."""
        return tuple(sorted((self.source_id, self.target_id)))


@dataclass
class TransferMatchResult:
    matches: List[TransferMatch] = field(default_factory=list)
    unmatched: List[Transaction] = field(default_factory=list)

    @property
    def confidence(self) -> float:
        """Average confidence across matches, 0 when there are none."""
        if not self.matches:
            return 0.0
        return sum(m.confidence for m in self.matches) / len(self.matches)
