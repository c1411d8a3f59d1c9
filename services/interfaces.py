"""Store interfaces the pipeline depends on.

The pipeline never talks to a storage medium directly; it is handed one of
these. SQLite and in-memory implementations live alongside.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from models.rule import CategoryRule
from models.transaction import Transaction


class TransactionStore(ABC):
    """Persistence collaborator for transactions.

    Implementations must enforce the Internal Transfer type invariant on every
    write, and apply batch_update as a single unit so reciprocal links are
    never half-written.
    """

    @abstractmethod
    def create(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    def bulk_create(self, transactions: List[Transaction]) -> int:
        pass

    @abstractmethod
    def update(self, transaction: Transaction) -> bool:
        pass

    @abstractmethod
    def batch_update(self, transactions: List[Transaction]) -> int:
        pass

    @abstractmethod
    def delete(self, transaction_id: str) -> bool:
        pass

    @abstractmethod
    def bulk_delete(self, transaction_ids: Iterable[str]) -> int:
        pass

    @abstractmethod
    def find(self, transaction_id: str) -> Optional[Transaction]:
        pass

    @abstractmethod
    def find_all(self) -> List[Transaction]:
        pass


class RuleStore(ABC):
    """Persistence collaborator for classification rules."""

    @abstractmethod
    def find_all(self) -> List[CategoryRule]:
        """All rules, active or not, in priority order."""
        pass

    @abstractmethod
    def find(self, rule_id: str) -> Optional[CategoryRule]:
        pass

    @abstractmethod
    def create(self, rule: CategoryRule) -> CategoryRule:
        pass

    @abstractmethod
    def update(self, rule: CategoryRule) -> bool:
        pass

    @abstractmethod
    def clear_all(self) -> int:
        pass
