from datetime import date

import pytest

from errors import TransferMatchError
from models.transaction import INTERNAL_TRANSFER
from transfers.notes import MANUAL_TRANSFER_NOTE
from tests.helpers import make_transaction


def transfer(id, amount, account, day=10):
    return make_transaction(
        id=id,
        amount=amount,
        account=account,
        transaction_date=date(2025, 2, day),
        description=f"ONLINE TRANSFER {account.upper()}",
        category=INTERNAL_TRANSFER,
        type="transfer",
    )


class TestTransferService:
    """Tests for TransferService over the SQLite store."""

    def test_auto_match_persists_both_sides(self, services):
        """Both halves of a new link are written."""
        services.transactions.bulk_create(
            [transfer("out", "-250.00", "Checking"), transfer("in", "250.00", "Savings")]
        )

        changed = services.transfers.auto_match()

        assert {t.id for t in changed} == {"out", "in"}
        assert services.transactions.find("out").linked_transaction_id == "in"
        assert services.transactions.find("in").linked_transaction_id == "out"
        assert services.transactions.find("in").notes.startswith("[Matched Transfer:")

    def test_auto_match_with_nothing_to_do(self, services):
        """No candidates means no writes."""
        services.transactions.bulk_create([make_transaction(id="expense")])

        assert services.transfers.auto_match() == []

    def test_suggest_matches_for_one_record(self, services):
        """Suggestions can be narrowed to pairs involving one record."""
        services.transactions.bulk_create(
            [
                transfer("out", "-250.00", "Checking"),
                transfer("in", "250.00", "Savings"),
                transfer("other-out", "-40.00", "Checking", day=20),
                transfer("other-in", "40.00", "Savings", day=20),
            ]
        )

        result = services.transfers.suggest_matches("other-in")

        assert [m.pair_key for m in result.matches] == [("other-in", "other-out")]

    def test_manual_match_and_unmatch(self, services):
        """A manual link survives auto matching and can be removed again."""
        services.transactions.bulk_create(
            [
                transfer("out", "-250.00", "Checking"),
                transfer("in", "250.00", "Savings"),
                transfer("late-in", "250.00", "Savings", day=16),
            ]
        )

        services.transfers.match("out", "late-in")
        services.transfers.auto_match()

        assert services.transactions.find("out").linked_transaction_id == "late-in"
        assert services.transactions.find("out").notes == MANUAL_TRANSFER_NOTE
        assert services.transactions.find("in").linked_transaction_id is None

        services.transfers.unmatch("late-in")

        assert services.transactions.find("out").linked_transaction_id is None
        assert services.transactions.find("late-in").notes == ""

    def test_invalid_manual_match(self, services):
        """Refused matches raise and write nothing."""
        services.transactions.bulk_create(
            [transfer("out", "-250.00", "Checking"), transfer("back", "250.00", "Checking")]
        )

        with pytest.raises(TransferMatchError):
            services.transfers.match("out", "back")

        assert services.transactions.find("out").linked_transaction_id is None

    def test_same_account_reversals(self, services):
        """Charge/refund pairs are linked through the service."""
        services.transactions.bulk_create(
            [
                make_transaction(id="charge", amount="-19.99", description="STORE PURCHASE"),
                make_transaction(id="refund", amount="19.99", description="STORE PURCHASE REFUND"),
            ]
        )

        changed = services.transfers.auto_match_same_account()

        assert len(changed) == 2
        assert services.transactions.find("charge").linked_transaction_id == "refund"
