"""Transaction service for database operations."""

from typing import Iterable, List, Optional
from datetime import date
from decimal import Decimal

from models.transaction import Transaction
from services.interfaces import TransactionStore

# SQL Query Constants
_TRANSACTION_FIELDS = """id, transaction_date, amount, description, account, notes,
    category, subcategory, transaction_type, confidence, reasoning, is_verified,
    linked_transaction_id, original_currency, exchange_rate"""

_FIELD_NAMES = [f.strip() for f in _TRANSACTION_FIELDS.split(",")]

# Automatically generate placeholders from field count
_TRANSACTION_INSERT_PLACEHOLDERS = f"({', '.join(['?'] * len(_FIELD_NAMES))})"

# Every column but the primary key can be rewritten by an update
_UPDATE_SET_CLAUSE = ", ".join(f"{name} = ?" for name in _FIELD_NAMES[1:])


class TransactionService(TransactionStore):
    """SQLite-backed store for transactions."""

    def __init__(self, db_manager):
        """Initialize the transaction service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def create(self, transaction: Transaction) -> Transaction:
        """Create a single transaction in the database.

        Args:
            transaction: Transaction object to insert.

        Returns:
            The stored Transaction (type corrected if it was an Internal Transfer).

        Raises:
            sqlite3.IntegrityError: If a transaction with this ID already exists.
        """
        transaction.enforce_type_invariant()
        with self.db_manager.connect() as conn:
            conn.execute(
                f"""
                INSERT INTO transactions ({_TRANSACTION_FIELDS})
                VALUES {_TRANSACTION_INSERT_PLACEHOLDERS}
                """,
                self._to_row(transaction),
            )
            conn.commit()

        return transaction

    def bulk_create(self, transactions: List[Transaction]) -> int:
        """Create multiple transactions in a single database transaction.

        Duplicates (same ID) are skipped.

        Returns:
            Number of transactions inserted.
        """
        if not transactions:
            return 0

        for t in transactions:
            t.enforce_type_invariant()

        with self.db_manager.connect() as conn:
            before = conn.total_changes
            conn.executemany(
                f"""
                INSERT OR IGNORE INTO transactions ({_TRANSACTION_FIELDS})
                VALUES {_TRANSACTION_INSERT_PLACEHOLDERS}
                """,
                [self._to_row(t) for t in transactions],
            )
            conn.commit()

            return conn.total_changes - before

    def update(self, transaction: Transaction) -> bool:
        """Rewrite a single transaction.

        Returns:
            True if a row was updated.
        """
        return self.batch_update([transaction]) > 0

    def batch_update(self, transactions: List[Transaction]) -> int:
        """Rewrite several transactions atomically.

        Used for link changes, so both halves of a pair land together or not at all.

        Returns:
            Number of transactions updated.
        """
        if not transactions:
            return 0

        data = []
        for t in transactions:
            t.enforce_type_invariant()
            row = self._to_row(t)
            # Field values followed by transaction ID for the WHERE clause
            data.append(row[1:] + (row[0],))

        with self.db_manager.connect() as conn:
            try:
                before = conn.total_changes
                conn.executemany(
                    f"UPDATE transactions SET {_UPDATE_SET_CLAUSE} WHERE id = ?",
                    data,
                )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

            return conn.total_changes - before

    def delete(self, transaction_id: str) -> bool:
        """Delete a transaction by ID.

        Returns:
            True if the transaction was deleted, False if not found.
        """
        return self.bulk_delete([transaction_id]) > 0

    def bulk_delete(self, transaction_ids: Iterable[str]) -> int:
        """Delete several transactions.

        Returns:
            Number of transactions deleted.
        """
        ids = list(set(transaction_ids))
        if not ids:
            return 0

        placeholders = ", ".join(["?"] * len(ids))
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM transactions WHERE id IN ({placeholders})", ids
            )
            conn.commit()
            return cursor.rowcount

    def find(self, transaction_id: str) -> Optional[Transaction]:
        """Get a single transaction by ID.

        Returns:
            Transaction object if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_TRANSACTION_FIELDS}
                FROM transactions
                WHERE id = ?
                """,
                (transaction_id,),
            )
            row = cursor.fetchone()

            if row:
                return self._row_to_transaction(row)
            return None

    def find_all(self) -> List[Transaction]:
        """Get every transaction, oldest first."""
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"""
                SELECT {_TRANSACTION_FIELDS}
                FROM transactions
                ORDER BY transaction_date, rowid
                """
            )
            return [self._row_to_transaction(row) for row in cursor.fetchall()]

    def _to_row(self, transaction: Transaction) -> tuple:
        data = transaction.to_dict()
        return tuple(data[name] for name in _FIELD_NAMES)

    def _row_to_transaction(self, row: tuple) -> Transaction:
        """Convert a database row to a Transaction object."""
        return Transaction(
            id=row[0],
            transaction_date=date.fromisoformat(row[1]),
            amount=Decimal(str(row[2])).quantize(Decimal("0.01")),
            description=row[3],
            account=row[4],
            notes=row[5] or "",
            category=row[6],
            subcategory=row[7],
            type=row[8],
            confidence=row[9],
            reasoning=row[10],
            is_verified=bool(row[11]),
            linked_transaction_id=row[12],
            original_currency=row[13],
            exchange_rate=Decimal(str(row[14])) if row[14] is not None else None,
        )
