from models.transaction import INTERNAL_TRANSFER
from services.backfill import backfill_transfer_types
from tests.helpers import make_transaction


def insert_raw(services, transaction):
    """Write a row as older versions did, bypassing the type invariant."""
    with services.db_manager.connect() as conn:
        data = transaction.to_dict()
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        conn.execute(
            f"INSERT INTO transactions ({columns}) VALUES ({placeholders})",
            tuple(data.values()),
        )
        conn.commit()


class TestBackfillTransferTypes:
    """Tests for backfill_transfer_types."""

    def test_fixes_internal_transfers(self, services):
        """Internal Transfer rows with another type are corrected."""
        insert_raw(services, make_transaction(id="bad", category=INTERNAL_TRANSFER,
                                              type="expense"))
        insert_raw(services, make_transaction(id="fine", category="Food & Dining"))

        fixed = backfill_transfer_types(services.transactions)

        assert fixed == 1
        assert services.transactions.find("bad").type == "transfer"
        assert services.transactions.find("fine").type == "expense"

    def test_second_run_changes_nothing(self, services):
        """The backfill is idempotent."""
        insert_raw(services, make_transaction(id="bad", category=INTERNAL_TRANSFER,
                                              type="income", amount="10.00"))

        assert backfill_transfer_types(services.transactions) == 1
        assert backfill_transfer_types(services.transactions) == 0

    def test_empty_store(self, services):
        """Nothing to fix on an empty ledger."""
        assert backfill_transfer_types(services.transactions) == 0
