"""Transfer matching: find, score, link and unlink transfer pairs.

The matcher is stateless. Every operation takes a snapshot of transactions
and returns new objects; nothing here touches storage (see
transfers.service for that).

Two heuristics exist side by side. The automatic path is strict: only
unlinked transfers, tight amount rules for same-currency pairs, and each
source keeps only its best candidate. The manual path is relaxed to help a
user find cross-currency pairs: wider date span and tolerance, foreign
expenses and income admitted, and every qualifying pair returned.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from config import MatchingPolicy
from errors import TransferMatchError
from models.transaction import Transaction
from models.transfer_match import TransferMatch, TransferMatchResult
from services.accounts import AccountDirectory
from transfers.notes import (
    MANUAL_TRANSFER_NOTE,
    append_note,
    auto_transfer_note,
    is_manual_match,
    same_account_note,
    strip_match_notes,
    unlinked,
)
from logger import get_logger

logger = get_logger()

_CANCELLATION_WORDS = ("cancel", "reverse", "reversal", "refund", "correction", "adjustment")


class TransferMatcher:
    """Finds and applies transfer links between transactions.

    Args:
        accounts: Resolves account references and their currencies.
        policy: Day spans, tolerances and confidence limits.
    """

    def __init__(
        self,
        accounts: Optional[AccountDirectory] = None,
        policy: Optional[MatchingPolicy] = None,
    ):
        self.policy = policy or MatchingPolicy()
        self.accounts = accounts or AccountDirectory(base_currency=self.policy.base_currency)

    # Currency helpers

    def currency_of(self, transaction: Transaction) -> str:
        return self.accounts.currency_of(transaction.account)

    def is_foreign(self, transaction: Transaction) -> bool:
        """Account in a non-base currency, or an original currency differing from the account's."""
        account_currency = self.currency_of(transaction)
        if account_currency != self.policy.base_currency:
            return True
        original = transaction.original_currency
        return bool(original) and original != account_currency

    def same_currency(self, a: Transaction, b: Transaction) -> bool:
        if a.original_currency and b.original_currency:
            return a.original_currency == b.original_currency
        return self.currency_of(a) == self.currency_of(b)

    # Pair tests

    @staticmethod
    def _opposite_signs(a: Transaction, b: Transaction) -> bool:
        return (a.amount > 0) != (b.amount > 0)

    @staticmethod
    def _amount_difference(a: Transaction, b: Transaction) -> Decimal:
        return abs(abs(a.amount) - abs(b.amount))

    @staticmethod
    def _relative_difference(a: Transaction, b: Transaction) -> Optional[Decimal]:
        """Difference as a fraction of the average magnitude; None when both are zero."""
        average = (abs(a.amount) + abs(b.amount)) / 2
        if average <= 0:
            return None
        return abs(abs(a.amount) - abs(b.amount)) / average

    def _within_tolerance(self, a: Transaction, b: Transaction, tolerance: float) -> bool:
        relative = self._relative_difference(a, b)
        return relative is not None and relative <= Decimal(str(tolerance))

    @staticmethod
    def _days_apart(a: Transaction, b: Transaction) -> int:
        return abs((a.transaction_date - b.transaction_date).days)

    @staticmethod
    def _in_range(
        transaction: Transaction, start: Optional[date], end: Optional[date]
    ) -> bool:
        if start is not None and transaction.transaction_date < start:
            return False
        if end is not None and transaction.transaction_date > end:
            return False
        return True

    def _fee_like(self, a: Transaction, b: Transaction) -> bool:
        """Same-currency differences must be small enough to be a fee."""
        difference = self._amount_difference(a, b)
        if difference < Decimal("0.01"):
            return True
        relative = self._relative_difference(a, b)
        return (
            relative is not None
            and difference < Decimal(str(self.policy.fee_max_amount))
            and relative < Decimal(str(self.policy.fee_max_percentage))
        )

    def _auto_pair_allowed(
        self, a: Transaction, b: Transaction, max_days: int, tolerance: float
    ) -> bool:
        if not self._opposite_signs(a, b):
            return False
        cross_currency = self.is_foreign(a) or self.is_foreign(b)
        if self.same_currency(a, b) and not cross_currency and not self._fee_like(a, b):
            return False
        if not self._within_tolerance(a, b, tolerance):
            return False
        if self._days_apart(a, b) > max_days:
            return False
        return not self.accounts.same_account(a.account, b.account)

    def _manual_pair_allowed(
        self, a: Transaction, b: Transaction, max_days: int, tolerance: float
    ) -> bool:
        if not self._opposite_signs(a, b):
            return False
        if not self._within_tolerance(a, b, tolerance):
            return False
        if self._days_apart(a, b) > max_days:
            return False
        if self.accounts.same_account(a.account, b.account):
            # Same account only for a transfer paired with its foreign leg
            return self.is_foreign(a) or self.is_foreign(b)
        return True

    # Scoring

    def _auto_confidence(self, days: int, difference: Decimal) -> float:
        confidence = 0.5
        if days == 0:
            confidence += 0.3
        elif days <= 1:
            confidence += 0.2
        elif days <= 3:
            confidence += 0.1

        if difference == 0:
            confidence += 0.3
        elif difference <= Decimal("0.01"):
            confidence += 0.2
        elif difference <= 1:
            confidence += 0.1

        return round(min(confidence, self.policy.auto_confidence_ceiling), 4)

    def _manual_confidence(
        self, a: Transaction, b: Transaction, days: int, difference: Decimal, same_currency: bool
    ) -> float:
        confidence = 0.4
        if days == 0:
            confidence += 0.2
        elif days <= 1:
            confidence += 0.15
        elif days <= 3:
            confidence += 0.1
        elif days <= 8:
            confidence += 0.05

        largest = max(abs(a.amount), abs(b.amount))
        if difference == 0:
            confidence += 0.3
        elif difference <= Decimal("0.01"):
            confidence += 0.25
        elif difference <= 1:
            confidence += 0.15
        elif not same_currency and difference <= largest * Decimal(str(self.policy.manual_tolerance)):
            confidence += 0.1

        confidence += 0.1 if same_currency else -0.05
        return round(min(confidence, self.policy.manual_confidence_ceiling), 4)

    def _same_account_confidence(
        self, a: Transaction, b: Transaction, days: int, difference: Decimal
    ) -> float:
        confidence = 0.5
        if days == 0:
            confidence += 0.3
        elif days <= 1:
            confidence += 0.1

        if difference == 0:
            confidence += 0.15
        elif difference <= Decimal("0.01"):
            confidence += 0.1
        else:
            confidence -= 0.1

        if _descriptions_indicate_cancellation(a.description, b.description):
            confidence += 0.2
        else:
            confidence -= 0.05

        return round(min(max(confidence, 0.0), 0.99), 4)

    # Finding matches

    def find_transfer_matches(
        self,
        transactions: List[Transaction],
        max_days: Optional[int] = None,
        tolerance: Optional[float] = None,
        date_range_start: Optional[date] = None,
        date_range_end: Optional[date] = None,
    ) -> TransferMatchResult:
        """Strict matching over unlinked transfers.

        Each source is paired with its highest-scoring candidate and both are
        then out of play.
        """
        max_days = self.policy.auto_max_days if max_days is None else max_days
        tolerance = self.policy.auto_tolerance if tolerance is None else tolerance

        candidates = [
            t
            for t in transactions
            if t.type == "transfer"
            and not t.linked_transaction_id
            and self._in_range(t, date_range_start, date_range_end)
        ]

        matches: List[TransferMatch] = []
        matched_ids: Set[str] = set()
        for source in candidates:
            if source.id in matched_ids:
                continue

            best: Optional[TransferMatch] = None
            for target in candidates:
                if target.id == source.id or target.id in matched_ids:
                    continue
                if not self._auto_pair_allowed(source, target, max_days, tolerance):
                    continue

                days = self._days_apart(source, target)
                difference = self._amount_difference(source, target)
                match = TransferMatch(
                    source_id=source.id,
                    target_id=target.id,
                    confidence=self._auto_confidence(days, difference),
                    match_type="exact" if days == 0 and difference == 0 else "approximate",
                    date_difference=days,
                    amount_difference=difference,
                    reasoning=(
                        f"Transfer match: {self.accounts.display_name(source.account)} <-> "
                        f"{self.accounts.display_name(target.account)}, {days} days apart"
                    ),
                )
                if best is None or match.confidence > best.confidence:
                    best = match

            if best is not None:
                matches.append(best)
                matched_ids.update((best.source_id, best.target_id))

        unmatched = [t for t in candidates if t.id not in matched_ids]
        logger.debug(
            f"Automatic transfer search: {len(matches)} match(es) among {len(candidates)} candidate(s)"
        )
        return TransferMatchResult(matches=matches, unmatched=unmatched)

    def find_manual_transfer_matches(
        self,
        transactions: List[Transaction],
        max_days: Optional[int] = None,
        tolerance: Optional[float] = None,
        date_range_start: Optional[date] = None,
        date_range_end: Optional[date] = None,
    ) -> TransferMatchResult:
        """Relaxed matching offered to a user looking for a counterpart.

        Foreign-currency expenses and income are candidates too, and every
        qualifying pair is returned once.
        """
        max_days = self.policy.manual_max_days if max_days is None else max_days
        tolerance = self.policy.manual_tolerance if tolerance is None else tolerance

        candidates = [
            t
            for t in transactions
            if not t.linked_transaction_id
            and self._in_range(t, date_range_start, date_range_end)
            and (
                t.type == "transfer"
                or (t.type in ("expense", "income") and self.is_foreign(t))
            )
        ]

        matches: List[TransferMatch] = []
        seen_pairs: Set[tuple] = set()
        for source in candidates:
            for target in candidates:
                if target.id == source.id:
                    continue
                pair_key = tuple(sorted((source.id, target.id)))
                if pair_key in seen_pairs:
                    continue
                if not self._manual_pair_allowed(source, target, max_days, tolerance):
                    continue

                days = self._days_apart(source, target)
                difference = self._amount_difference(source, target)
                same_currency = self.same_currency(source, target)
                source_name = self.accounts.display_name(source.account)
                target_name = self.accounts.display_name(target.account)
                reasoning = (
                    f"Possible manual match: {source_name} <-> {target_name}, {days} days apart"
                    if same_currency
                    else f"Possible match with exchange rate tolerance: {source_name} <-> "
                    f"{target_name}, {days} days apart"
                )
                matches.append(
                    TransferMatch(
                        source_id=source.id,
                        target_id=target.id,
                        confidence=self._manual_confidence(
                            source, target, days, difference, same_currency
                        ),
                        match_type="approximate",
                        date_difference=days,
                        amount_difference=difference,
                        reasoning=reasoning,
                    )
                )
                seen_pairs.add(pair_key)

        paired = {tid for pair in seen_pairs for tid in pair}
        unmatched = [t for t in candidates if t.id not in paired]
        logger.debug(
            f"Manual transfer search: {len(matches)} possible pair(s) among {len(candidates)} candidate(s)"
        )
        return TransferMatchResult(matches=matches, unmatched=unmatched)

    def find_same_account_matches(
        self,
        transactions: List[Transaction],
        max_days: Optional[int] = None,
        tolerance: Optional[float] = None,
    ) -> TransferMatchResult:
        """Pair a charge with its reversal inside one account."""
        max_days = self.policy.same_account_max_days if max_days is None else max_days
        tolerance = self.policy.same_account_tolerance if tolerance is None else tolerance

        candidates = [
            t for t in transactions if t.type != "transfer" and not t.linked_transaction_id
        ]

        matches: List[TransferMatch] = []
        matched_ids: Set[str] = set()
        for source in candidates:
            if source.id in matched_ids:
                continue
            for target in candidates:
                if target.id == source.id or target.id in matched_ids:
                    continue
                if not self.accounts.same_account(source.account, target.account):
                    continue
                if not self._opposite_signs(source, target):
                    continue
                if not self._within_tolerance(source, target, tolerance):
                    continue
                days = self._days_apart(source, target)
                if days > max_days:
                    continue

                difference = self._amount_difference(source, target)
                matches.append(
                    TransferMatch(
                        source_id=source.id,
                        target_id=target.id,
                        confidence=self._same_account_confidence(source, target, days, difference),
                        match_type="exact" if days == 0 and difference == 0 else "approximate",
                        date_difference=days,
                        amount_difference=difference,
                        reasoning=(
                            f"Same account matched transaction: "
                            f"{self.accounts.display_name(source.account)}, {days} days apart, "
                            f"amounts: {source.amount} / {target.amount}"
                        ),
                    )
                )
                matched_ids.update((source.id, target.id))
                break

        unmatched = [t for t in candidates if t.id not in matched_ids]
        return TransferMatchResult(matches=matches, unmatched=unmatched)

    # Applying and removing links

    def apply_transfer_matches(
        self, transactions: List[Transaction], matches: Iterable[TransferMatch]
    ) -> List[Transaction]:
        """Link each matched pair and stamp both notes with the confidence."""
        return self._apply(transactions, matches, auto_transfer_note)

    def apply_same_account_matches(
        self, transactions: List[Transaction], matches: Iterable[TransferMatch]
    ) -> List[Transaction]:
        return self._apply(transactions, matches, same_account_note)

    def _apply(self, transactions, matches, annotate) -> List[Transaction]:
        by_id = {t.id: t for t in transactions}
        updated: Dict[str, Transaction] = {}

        for match in matches:
            source = updated.get(match.source_id) or by_id.get(match.source_id)
            target = updated.get(match.target_id) or by_id.get(match.target_id)
            if source is None or target is None:
                logger.warning(f"Skipping match with unknown transaction: {match.pair_key}")
                continue
            if source.linked_transaction_id or target.linked_transaction_id:
                logger.debug(f"Skipping match on already linked pair: {match.pair_key}")
                continue

            annotation = annotate(match.confidence)
            updated[source.id] = replace(
                source,
                linked_transaction_id=target.id,
                notes=append_note(source.notes, annotation),
            )
            updated[target.id] = replace(
                target,
                linked_transaction_id=source.id,
                notes=append_note(target.notes, annotation),
            )

        return [updated.get(t.id, t) for t in transactions]

    def auto_match_transfers(self, transactions: List[Transaction]) -> List[Transaction]:
        """Find and apply confident automatic matches.

        Records that are part of a manual match are never touched, even if
        an automatic candidate exists for them.
        """
        transfers = [t for t in transactions if t.type == "transfer"]
        if not transfers:
            return list(transactions)

        manual_ids: Set[str] = set()
        for transaction in transfers:
            if is_manual_match(transaction):
                manual_ids.add(transaction.id)
                manual_ids.add(transaction.linked_transaction_id)

        result = self.find_transfer_matches(
            transfers,
            max_days=self.policy.auto_max_days,
            tolerance=self.policy.auto_match_tolerance,
        )
        accepted = [
            m
            for m in result.matches
            if m.confidence >= self.policy.auto_confidence_floor
            and m.source_id not in manual_ids
            and m.target_id not in manual_ids
        ]

        if not accepted:
            logger.info(f"Automatic transfer matching: no matches from {len(result.matches)} found")
            return list(transactions)

        logger.info(
            f"Automatic transfer matching: applying {len(accepted)} of {len(result.matches)} match(es)"
        )
        return self.apply_transfer_matches(transactions, accepted)

    def auto_match_same_account_transactions(
        self, transactions: List[Transaction]
    ) -> List[Transaction]:
        result = self.find_same_account_matches(transactions)
        accepted = [
            m for m in result.matches if m.confidence >= self.policy.same_account_confidence_floor
        ]
        if not accepted:
            return list(transactions)
        logger.info(f"Linking {len(accepted)} same-account reversal pair(s)")
        return self.apply_same_account_matches(transactions, accepted)

    def manually_match_transfers(
        self, transactions: List[Transaction], source_id: str, target_id: str
    ) -> List[Transaction]:
        """Link two records at the user's request.

        Any existing links on either record are dissolved first so links stay
        reciprocal.

        Raises:
            TransferMatchError: If a record is missing or the pair is not allowed.
        """
        if source_id == target_id:
            raise TransferMatchError("Cannot match a transaction with itself")

        by_id = {t.id: t for t in transactions}
        source = by_id.get(source_id)
        target = by_id.get(target_id)
        if source is None or target is None:
            raise TransferMatchError(f"Transaction not found: {target_id if source else source_id}")

        cross_currency = self.is_foreign(source) or self.is_foreign(target)
        if not (source.type == "transfer" and target.type == "transfer") and not cross_currency:
            raise TransferMatchError("Both transactions must be transfer type")
        if self.accounts.same_account(source.account, target.account) and not cross_currency:
            raise TransferMatchError("Cannot match transfers within the same account")

        updated: Dict[str, Transaction] = {}
        for record in (source, target):
            partner_id = record.linked_transaction_id
            if partner_id and partner_id not in (source_id, target_id) and partner_id in by_id:
                partner = by_id[partner_id]
                if partner.linked_transaction_id == record.id:
                    updated[partner_id] = unlinked(partner)

        updated[source_id] = replace(
            source,
            linked_transaction_id=target_id,
            notes=append_note(strip_match_notes(source.notes), MANUAL_TRANSFER_NOTE),
        )
        updated[target_id] = replace(
            target,
            linked_transaction_id=source_id,
            notes=append_note(strip_match_notes(target.notes), MANUAL_TRANSFER_NOTE),
        )
        logger.info(f"Manually matched {source_id} <-> {target_id}")
        return [updated.get(t.id, t) for t in transactions]

    def unmatch_transfers(
        self, transactions: List[Transaction], source_id: str, target_id: Optional[str] = None
    ) -> List[Transaction]:
        """Remove the link between two records and their match annotations.

        If target_id is omitted, the source's current partner is used. A
        record is only unlinked if its link points at the other one.
        """
        by_id = {t.id: t for t in transactions}
        source = by_id.get(source_id)
        if source is None:
            logger.warning(f"Cannot unmatch unknown transaction {source_id}")
            return list(transactions)

        target_id = target_id or source.linked_transaction_id
        updated: Dict[str, Transaction] = {}
        if source.linked_transaction_id == target_id:
            updated[source_id] = unlinked(source)

        target = by_id.get(target_id) if target_id else None
        if target is not None and target.linked_transaction_id == source_id:
            updated[target.id] = unlinked(target)

        if updated:
            logger.info(f"Unmatched {source_id} <-> {target_id}")
        return [updated.get(t.id, t) for t in transactions]

    # Queries

    def get_matched_transfers(self, transactions: List[Transaction]) -> List[TransferMatch]:
        """Existing reciprocal transfer links, one entry per pair."""
        by_id = {t.id: t for t in transactions}
        matches: List[TransferMatch] = []
        seen: Set[str] = set()

        for transaction in transactions:
            if transaction.type != "transfer" or not transaction.linked_transaction_id:
                continue
            if transaction.id in seen:
                continue
            partner = by_id.get(transaction.linked_transaction_id)
            if partner is None or partner.id in seen:
                continue

            days = self._days_apart(transaction, partner)
            difference = self._amount_difference(transaction, partner)
            manual = is_manual_match(transaction)
            matches.append(
                TransferMatch(
                    source_id=transaction.id,
                    target_id=partner.id,
                    confidence=self._auto_confidence(days, difference),
                    match_type="manual" if manual else (
                        "exact" if days == 0 and difference == 0 else "approximate"
                    ),
                    date_difference=days,
                    amount_difference=difference,
                    reasoning=(
                        f"Existing match: {self.accounts.display_name(transaction.account)} <-> "
                        f"{self.accounts.display_name(partner.account)}"
                    ),
                    is_verified=manual,
                )
            )
            seen.update((transaction.id, partner.id))
        return matches

    def get_unmatched_transfers(self, transactions: List[Transaction]) -> List[Transaction]:
        return [t for t in transactions if t.type == "transfer" and not t.linked_transaction_id]

    def count_unmatched_transfers(self, transactions: List[Transaction]) -> int:
        return len(self.get_unmatched_transfers(transactions))

    def filter_non_transfers(self, transactions: List[Transaction]) -> List[Transaction]:
        """Hide matched transfers; unmatched ones stay visible for review."""
        return [
            t for t in transactions if t.type != "transfer" or not t.linked_transaction_id
        ]


def _descriptions_indicate_cancellation(first: str, second: str) -> bool:
    """Cancellation wording on either side, or mostly the same words."""
    first = first.lower()
    second = second.lower()
    if any(word in first or word in second for word in _CANCELLATION_WORDS):
        return True

    words_first = [w for w in first.split() if len(w) > 2]
    words_second = [w for w in second.split() if len(w) > 2]
    if not words_first or not words_second:
        return False
    common = [w for w in words_first if w in words_second]
    similarity = (len(common) * 2) / (len(words_first) + len(words_second))
    return similarity >= 0.6
