"""Batch categorization of imported transactions.

Rows are first run through the rule engine. Whatever no rule claims goes to
the LLM in fixed-size chunks; confident answers become rules immediately, and
the rules are re-applied to the whole remaining pool before every further
chunk, so records covered by a freshly learned rule never reach the LLM.

Answers are matched back to records by content key, never by position,
because the pool shrinks between chunks.
"""

import re
import threading
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from config import ClassificationPolicy
from errors import ImportCancelledError, OracleUnavailableError
from llm.client import ClassificationClient, ClassificationRequest, ClassificationResponse
from models.category import UNCATEGORIZED_ID, CategoryCatalog
from models.transaction import UNCATEGORIZED, Transaction
from rules.engine import RuleEngine
from logger import get_logger

logger = get_logger()

_SCRUTINY_PATTERN = re.compile(r"\bach\s+debit\b|\bwithdrawal\b", re.IGNORECASE)
_SCRUTINY_EXCLUDED = re.compile(r"\batm\b|\bcash\s+withdrawal\b", re.IGNORECASE)


def requires_scrutiny(description: str) -> bool:
    """True for ACH debit and generic withdrawal descriptions.

    These rarely name the payee, so a stricter confidence bar applies. ATM and
    cash withdrawals are unambiguous and excluded.
    """
    if not description:
        return False
    if _SCRUTINY_EXCLUDED.search(description):
        return False
    return _SCRUTINY_PATTERN.search(description) is not None


class BatchCategorizer:
    """Coordinates the rule engine and the classification client over a batch.

    Args:
        rule_engine: Applies and learns rules.
        client: LLM client. When None every unmatched record gets the
               low-confidence fallback.
        policy: Chunk size and confidence thresholds.
    """

    def __init__(
        self,
        rule_engine: RuleEngine,
        client: Optional[ClassificationClient] = None,
        policy: Optional[ClassificationPolicy] = None,
    ):
        self.rule_engine = rule_engine
        self.client = client
        self.policy = policy or ClassificationPolicy()

    def process_transactions(
        self,
        rows: List[dict],
        account: str,
        catalog: CategoryCatalog,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[Transaction]:
        """Classify a batch of parsed statement rows.

        Args:
            rows: Parsed rows with 'date', 'description', 'amount' and optional
                 'notes'. Invalid rows are skipped.
            account: Account the rows belong to (id or display name).
            catalog: Categories the LLM may choose from.
            cancel_event: Checked before every chunk.
            on_progress: Called with (classified, total) after each chunk.

        Returns:
            Classified transactions, in input order.

        Raises:
            ImportCancelledError: If cancel_event was set. Carries the records
                classified so far; rules already learned are kept.
        """
        transactions = self._normalize(rows, account)
        if not transactions:
            return []

        results: Dict[str, Transaction] = {}

        split = self.rule_engine.apply_rules_to_batch(transactions)
        for transaction, _rule in split.matched:
            results[transaction.id] = transaction
        logger.info(
            f"Rules matched {len(split.matched)} of {len(transactions)} transaction(s); "
            f"{len(split.unmatched)} left for the LLM"
        )

        pool = split.unmatched
        chunk_number = 0
        while pool:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Import cancelled after {chunk_number} chunk(s)")
                raise ImportCancelledError(completed=self._in_order(transactions, results))

            if chunk_number > 0:
                # Pick up rules learned from earlier chunks
                rerun = self.rule_engine.apply_rules_to_batch(pool)
                for transaction, _rule in rerun.matched:
                    results[transaction.id] = transaction
                if rerun.matched:
                    logger.info(
                        f"Learned rules matched {len(rerun.matched)} pending transaction(s)"
                    )
                pool = rerun.unmatched
                if not pool:
                    break

            chunk, pool = pool[: self.policy.chunk_size], pool[self.policy.chunk_size :]
            chunk_number += 1
            logger.info(f"Classifying chunk {chunk_number} ({len(chunk)} transaction(s))")

            for transaction in self._classify_chunk(chunk, account, catalog):
                results[transaction.id] = transaction

            if on_progress is not None:
                on_progress(len(results), len(transactions))

        classified = self._in_order(transactions, results)
        logger.info(f"Classified {len(classified)} transaction(s) in {chunk_number} LLM chunk(s)")
        return classified

    def _normalize(self, rows: List[dict], account: str) -> List[Transaction]:
        transactions = []
        for position, row in enumerate(rows):
            try:
                transactions.append(Transaction.from_row(row, account))
            except ValueError as e:
                logger.warning(f"Skipping row {position}: {e}")
        return transactions

    def _in_order(
        self, transactions: List[Transaction], results: Dict[str, Transaction]
    ) -> List[Transaction]:
        return [results[t.id] for t in transactions if t.id in results]

    def _classify_chunk(
        self, chunk: List[Transaction], account: str, catalog: CategoryCatalog
    ) -> List[Transaction]:
        requests = [ClassificationRequest.from_transaction(t) for t in chunk]

        if self.client is None:
            responses = [self._fallback(r, "LLM classification disabled") for r in requests]
        else:
            try:
                responses = self.client.classify_batch(requests, catalog)
            except OracleUnavailableError as e:
                logger.error(f"Classification unavailable for chunk of {len(chunk)}: {e}")
                responses = [
                    self._fallback(r, "Classification service unavailable") for r in requests
                ]

        by_key: Dict[str, ClassificationResponse] = {}
        for response in responses:
            by_key.setdefault(response.key, response)

        classified = []
        for transaction in chunk:
            key = transaction.correlation_key()
            response = by_key.get(key)
            if response is None:
                logger.warning(f"No classification returned for {key}")
                response = self._fallback(
                    ClassificationRequest.from_transaction(transaction),
                    "No classification returned",
                )

            result = self._apply_response(transaction, response, catalog)
            classified.append(result)

            if self._should_learn(transaction, response, result):
                self.rule_engine.create_auto_rule(
                    account,
                    transaction.description,
                    result.category,
                    result.subcategory,
                    response.confidence,
                )
        return classified

    def _fallback(self, request: ClassificationRequest, reason: str) -> ClassificationResponse:
        return ClassificationResponse(
            key=request.key,
            category_id=UNCATEGORIZED_ID,
            subcategory_id=None,
            confidence=self.policy.fallback_confidence,
            reasoning=reason,
            fallback=True,
        )

    def _threshold(self, description: str) -> float:
        if requires_scrutiny(description):
            return self.policy.scrutiny_threshold
        return self.policy.auto_rule_threshold

    def _apply_response(
        self,
        transaction: Transaction,
        response: ClassificationResponse,
        catalog: CategoryCatalog,
    ) -> Transaction:
        category_id, subcategory_id = catalog.normalize(
            response.category_id, response.subcategory_id
        )
        reasoning = response.reasoning

        if (
            requires_scrutiny(transaction.description)
            and response.confidence < self.policy.scrutiny_threshold
            and category_id != UNCATEGORIZED_ID
        ):
            logger.debug(
                f"Low-confidence answer for '{transaction.description}' "
                f"({response.confidence:.2f}) left uncategorized"
            )
            category_id, subcategory_id = UNCATEGORIZED_ID, None
            reasoning = (
                f"{reasoning} (below {self.policy.scrutiny_threshold:.2f} "
                f"confidence required for this description)"
                if reasoning
                else "Confidence too low for this description"
            )

        category, subcategory = catalog.display_names(category_id, subcategory_id)
        result = replace(
            transaction,
            category=category,
            subcategory=subcategory,
            confidence=response.confidence,
            reasoning=reasoning,
            type=Transaction.infer_type(transaction.amount),
        )
        result.enforce_type_invariant()
        return result

    def _should_learn(
        self,
        transaction: Transaction,
        response: ClassificationResponse,
        result: Transaction,
    ) -> bool:
        if response.fallback:
            return False
        if result.category == UNCATEGORIZED:
            return False
        return response.confidence >= self._threshold(transaction.description)
