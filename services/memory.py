"""In-memory stores, used by tests and by callers with their own persistence."""

from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from models.rule import CategoryRule
from models.transaction import Transaction
from services.interfaces import RuleStore, TransactionStore


class InMemoryTransactionStore(TransactionStore):
    """Transaction store backed by a dict, preserving insertion order."""

    def __init__(self, transactions: Optional[List[Transaction]] = None):
        self._transactions: Dict[str, Transaction] = {}
        if transactions:
            self.bulk_create(transactions)

    def create(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._transactions:
            raise ValueError(f"Transaction {transaction.id} already exists")
        stored = replace(transaction)
        stored.enforce_type_invariant()
        self._transactions[stored.id] = stored
        return replace(stored)

    def bulk_create(self, transactions: List[Transaction]) -> int:
        # Duplicates are skipped, mirroring INSERT OR IGNORE
        inserted = 0
        for transaction in transactions:
            if transaction.id not in self._transactions:
                self.create(transaction)
                inserted += 1
        return inserted

    def update(self, transaction: Transaction) -> bool:
        return self.batch_update([transaction]) > 0

    def batch_update(self, transactions: List[Transaction]) -> int:
        updated = 0
        for transaction in transactions:
            if transaction.id in self._transactions:
                stored = replace(transaction)
                stored.enforce_type_invariant()
                self._transactions[stored.id] = stored
                updated += 1
        return updated

    def delete(self, transaction_id: str) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    def bulk_delete(self, transaction_ids: Iterable[str]) -> int:
        return sum(1 for tid in set(transaction_ids) if self.delete(tid))

    def find(self, transaction_id: str) -> Optional[Transaction]:
        stored = self._transactions.get(transaction_id)
        return replace(stored) if stored else None

    def find_all(self) -> List[Transaction]:
        return [replace(t) for t in self._transactions.values()]


class InMemoryRuleStore(RuleStore):
    """Rule store backed by a list."""

    def __init__(self, rules: Optional[List[CategoryRule]] = None):
        self._rules: List[CategoryRule] = list(rules or [])

    def find_all(self) -> List[CategoryRule]:
        return sorted(self._rules, key=lambda r: (r.priority, r.created_at))

    def find(self, rule_id: str) -> Optional[CategoryRule]:
        return next((r for r in self._rules if r.id == rule_id), None)

    def create(self, rule: CategoryRule) -> CategoryRule:
        self._rules.append(rule)
        return rule

    def update(self, rule: CategoryRule) -> bool:
        for index, existing in enumerate(self._rules):
            if existing.id == rule.id:
                self._rules[index] = rule
                return True
        return False

    def clear_all(self) -> int:
        count = len(self._rules)
        self._rules = []
        return count
