from datetime import date
from decimal import Decimal

import pytest

from config import MatchingPolicy
from errors import TransferMatchError
from models.transaction import INTERNAL_TRANSFER
from services.accounts import AccountDirectory
from transfers.matching import TransferMatcher
from transfers.notes import MANUAL_TRANSFER_NOTE, is_manual_match
from tests.helpers import make_transaction


def transfer(amount, account, day=10, **overrides):
    return make_transaction(
        id=overrides.pop("id", None) or f"{account}-{amount}-{day}",
        amount=amount,
        account=account,
        transaction_date=date(2025, 1, day),
        description=overrides.pop("description", f"TRANSFER {account.upper()}"),
        category=INTERNAL_TRANSFER,
        type="transfer",
        **overrides,
    )


def by_id(transactions):
    return {t.id: t for t in transactions}


@pytest.fixture
def matcher(accounts):
    return TransferMatcher(AccountDirectory(accounts))


class TestAutoMatchTransfers:
    """Tests for the automatic transfer path."""

    def test_matching_pair_is_linked_both_ways(self, matcher):
        """Equal and opposite transfers on one day link with high confidence."""
        out = transfer("-1000.00", "Checking", id="out")
        incoming = transfer("1000.00", "Savings", id="in")

        result = by_id(matcher.auto_match_transfers([out, incoming]))

        assert result["out"].linked_transaction_id == "in"
        assert result["in"].linked_transaction_id == "out"
        assert result["out"].notes == "[Matched Transfer: 0.99 confidence]"
        assert result["in"].notes == result["out"].notes

    def test_confidence_and_match_type(self, matcher):
        """Same-day, equal-amount pairs are exact at the confidence ceiling."""
        result = matcher.find_transfer_matches(
            [transfer("-1000.00", "Checking"), transfer("1000.00", "Savings")]
        )

        assert len(result.matches) == 1
        match = result.matches[0]
        assert match.confidence >= 0.9
        assert match.match_type == "exact"
        assert match.reasoning.startswith("Transfer match: Checking <-> Savings")
        assert result.unmatched == []

    def test_same_account_pair_never_auto_matched(self, matcher):
        """Two transfers in one account are left alone."""
        transactions = [transfer("-100.00", "Checking"), transfer("100.00", "acc-checking")]

        result = matcher.auto_match_transfers(transactions)

        assert all(t.linked_transaction_id is None for t in result)

    def test_same_sign_pair_not_matched(self, matcher):
        """Both outflows cannot be two legs of one transfer."""
        transactions = [transfer("-100.00", "Checking"), transfer("-100.00", "Savings")]

        assert matcher.find_transfer_matches(transactions).matches == []

    def test_small_fee_difference_is_allowed(self, matcher):
        """A same-currency difference under the fee limits still matches."""
        transactions = [transfer("-1000.00", "Checking", id="out"),
                        transfer("999.00", "Savings", id="in")]

        result = by_id(matcher.auto_match_transfers(transactions))

        assert result["out"].linked_transaction_id == "in"
        assert result["out"].notes == "[Matched Transfer: 0.90 confidence]"

    def test_same_currency_difference_too_large_for_a_fee(self, matcher):
        """A 1% difference between two USD accounts is not a fee."""
        transactions = [transfer("-1000.00", "Checking"), transfer("990.00", "Savings")]

        result = matcher.auto_match_transfers(transactions)

        assert all(t.linked_transaction_id is None for t in result)

    def test_cross_currency_pair_within_tolerance(self, matcher):
        """A foreign leg may differ by the exchange rate, within tolerance."""
        transactions = [transfer("-1000.00", "Checking", id="usd"),
                        transfer("960.00", "Euro Account", id="eur")]

        result = by_id(matcher.auto_match_transfers(transactions))

        assert result["usd"].linked_transaction_id == "eur"
        assert result["usd"].notes == "[Matched Transfer: 0.80 confidence]"

    def test_cross_currency_pair_outside_tolerance(self, matcher):
        """An 8% gap is too wide for the automatic path."""
        transactions = [transfer("-1000.00", "Checking"), transfer("920.00", "Euro Account")]

        result = matcher.auto_match_transfers(transactions)

        assert all(t.linked_transaction_id is None for t in result)

    def test_pairs_too_far_apart(self, matcher):
        """More than seven days apart is not a transfer pair."""
        transactions = [transfer("-50.00", "Checking", day=1), transfer("50.00", "Savings", day=9)]

        assert matcher.find_transfer_matches(transactions).matches == []

    def test_best_candidate_wins(self, matcher):
        """A source pairs with its highest-scoring candidate, not the first."""
        source = transfer("-100.00", "Checking", day=10, id="source")
        later = transfer("100.00", "Savings", day=14, id="later")
        same_day = transfer("100.00", "Savings", day=10, id="same-day")

        result = by_id(matcher.auto_match_transfers([source, later, same_day]))

        assert result["source"].linked_transaction_id == "same-day"
        assert result["later"].linked_transaction_id is None

    def test_confidence_floor(self, accounts):
        """Matches below the floor are found but not applied."""
        strict = TransferMatcher(
            AccountDirectory(accounts), MatchingPolicy(auto_confidence_floor=0.6)
        )
        transactions = [transfer("-1000.00", "Checking", day=1),
                        transfer("960.00", "Euro Account", day=6)]

        assert strict.find_transfer_matches(transactions, tolerance=0.05).matches[0].confidence == 0.5
        assert all(t.linked_transaction_id is None for t in strict.auto_match_transfers(transactions))

    def test_manual_matches_are_preserved(self, matcher):
        """A manual link is never replaced by an automatic one."""
        out = transfer("-500.00", "Checking", id="out", linked_transaction_id="in",
                       notes=MANUAL_TRANSFER_NOTE)
        incoming = transfer("450.00", "Savings", id="in", linked_transaction_id="out",
                            notes=MANUAL_TRANSFER_NOTE)
        better = transfer("500.00", "Savings", id="better")

        result = by_id(matcher.auto_match_transfers([out, incoming, better]))

        assert result["out"].linked_transaction_id == "in"
        assert result["out"].notes == MANUAL_TRANSFER_NOTE
        assert result["better"].linked_transaction_id is None

    def test_non_transfers_ignored(self, matcher):
        """Only transfer-type records take part in the automatic path."""
        transactions = [
            make_transaction(amount="-100.00", account="Checking"),
            make_transaction(amount="100.00", account="Savings"),
        ]

        assert matcher.auto_match_transfers(transactions) == transactions

    def test_input_is_not_modified(self, matcher):
        """The matcher returns new records."""
        out = transfer("-1000.00", "Checking")
        incoming = transfer("1000.00", "Savings")

        matcher.auto_match_transfers([out, incoming])

        assert out.linked_transaction_id is None
        assert out.notes == ""

    def test_date_range_filter(self, matcher):
        """Candidates outside the range are ignored."""
        transactions = [transfer("-20.00", "Checking", day=3), transfer("20.00", "Savings", day=3)]

        result = matcher.find_transfer_matches(
            transactions, date_range_start=date(2025, 1, 5), date_range_end=date(2025, 1, 31)
        )

        assert result.matches == []
        assert result.unmatched == []


class TestManualMatching:
    """Tests for the relaxed manual path."""

    def test_foreign_income_suggested_for_transfer(self, matcher):
        """A foreign-account income record is a manual candidate for a transfer."""
        out = transfer("-1000.00", "Checking", day=1, id="out")
        income = make_transaction(id="income", amount="900.00", account="Euro Account",
                                  transaction_date=date(2025, 1, 6))

        result = matcher.find_manual_transfer_matches([out, income])

        assert len(result.matches) == 1
        match = result.matches[0]
        assert match.pair_key == ("income", "out")
        assert match.confidence == 0.5
        assert match.reasoning.startswith("Possible match with exchange rate tolerance")
        assert matcher.find_transfer_matches([out, income]).matches == []

    def test_each_pair_suggested_once(self, matcher):
        """A pair is not repeated with source and target swapped."""
        transactions = [transfer("-100.00", "Checking"), transfer("100.00", "Savings")]

        result = matcher.find_manual_transfer_matches(transactions)

        assert len(result.matches) == 1
        assert result.matches[0].confidence == 0.85

    def test_domestic_expenses_not_candidates(self, matcher):
        """Ordinary USD expenses are not offered."""
        transactions = [make_transaction(amount="-100.00"), transfer("100.00", "Savings")]

        result = matcher.find_manual_transfer_matches(transactions)

        assert result.matches == []
        assert [t.id for t in result.unmatched] == [transactions[1].id]

    def test_manually_match_links_with_manual_note(self, matcher):
        """Both records get the link and the manual annotation."""
        out = transfer("-1000.00", "Checking", id="out", notes="Rent money")
        income = make_transaction(id="income", amount="870.00", account="Euro Account")

        result = by_id(matcher.manually_match_transfers([out, income], "out", "income"))

        assert result["out"].linked_transaction_id == "income"
        assert result["income"].linked_transaction_id == "out"
        assert result["out"].notes == f"Rent money\n{MANUAL_TRANSFER_NOTE}"
        assert result["income"].notes == MANUAL_TRANSFER_NOTE

    def test_manual_match_replaces_auto_annotation(self, matcher):
        """Re-linking an auto-matched record drops the old stamp and frees the old partner."""
        out = transfer("-100.00", "Checking", id="out")
        old = transfer("100.00", "Savings", id="old")
        new = transfer("100.00", "Savings", id="new", day=11)
        linked = matcher.auto_match_transfers([out, old, new])

        result = by_id(matcher.manually_match_transfers(linked, "out", "new"))

        assert result["out"].linked_transaction_id == "new"
        assert result["out"].notes == MANUAL_TRANSFER_NOTE
        assert result["old"].linked_transaction_id is None
        assert result["old"].notes == ""

    @pytest.mark.parametrize(
        "source_id,target_id,message",
        [
            ("out", "out", "itself"),
            ("out", "missing", "not found"),
            ("out", "expense", "transfer type"),
            ("out", "same-account", "same account"),
        ],
    )
    def test_rejected_manual_matches(self, matcher, source_id, target_id, message):
        """Self, missing, non-transfer and same-account pairs are refused."""
        transactions = [
            transfer("-100.00", "Checking", id="out"),
            make_transaction(id="expense", amount="100.00", account="Savings"),
            transfer("100.00", "Checking", id="same-account"),
        ]

        with pytest.raises(TransferMatchError, match=message):
            matcher.manually_match_transfers(transactions, source_id, target_id)

    def test_unmatch_clears_both_sides(self, matcher):
        """Unmatching removes links and annotations, keeping user notes."""
        out = transfer("-100.00", "Checking", id="out", notes="Monthly")
        incoming = transfer("100.00", "Savings", id="in")
        linked = matcher.auto_match_transfers([out, incoming])

        result = by_id(matcher.unmatch_transfers(linked, "out"))

        assert result["out"].linked_transaction_id is None
        assert result["in"].linked_transaction_id is None
        assert result["out"].notes == "Monthly"
        assert result["in"].notes == ""

    def test_unmatch_leaves_unrelated_links(self, matcher):
        """A target that points elsewhere is not touched."""
        a = transfer("-100.00", "Checking", id="a", linked_transaction_id="b")
        b = transfer("100.00", "Savings", id="b", linked_transaction_id="a")
        c = transfer("100.00", "Savings", id="c", linked_transaction_id="d")

        result = by_id(matcher.unmatch_transfers([a, b, c], "a", "c"))

        assert result["c"].linked_transaction_id == "d"
        assert result["a"].linked_transaction_id == "b"


class TestSameAccountMatching:
    """Tests for charge/reversal pairs inside one account."""

    def test_reversal_pair_linked(self, matcher):
        """A charge and its refund on the same day are linked."""
        charge = make_transaction(id="charge", amount="-50.00", description="AMAZON PURCHASE")
        refund = make_transaction(id="refund", amount="50.00",
                                  description="AMAZON PURCHASE REFUND")

        result = by_id(matcher.auto_match_same_account_transactions([charge, refund]))

        assert result["charge"].linked_transaction_id == "refund"
        assert result["refund"].notes == "[Matched Transaction: 0.99 confidence]"

    def test_different_accounts_not_paired(self, matcher):
        """Reversals must be in the same account."""
        charge = make_transaction(amount="-50.00", description="AMAZON PURCHASE")
        refund = make_transaction(amount="50.00", account="Savings",
                                  description="AMAZON PURCHASE REFUND")

        assert matcher.find_same_account_matches([charge, refund]).matches == []

    def test_transfers_excluded(self, matcher):
        """Transfer records are handled by the transfer paths only."""
        transactions = [transfer("-50.00", "Checking"), transfer("50.00", "Checking", day=10,
                                                                 id="other")]

        assert matcher.find_same_account_matches(transactions).matches == []

    def test_same_account_link_counts_as_automatic(self, matcher):
        """Same-account stamps are not mistaken for manual matches."""
        charge = make_transaction(amount="-50.00", description="AMAZON PURCHASE")
        refund = make_transaction(amount="50.00", description="AMAZON PURCHASE REFUND")

        linked = matcher.auto_match_same_account_transactions([charge, refund])

        assert all(t.linked_transaction_id for t in linked)
        assert not any(is_manual_match(t) for t in linked)


class TestQueries:
    """Tests for matched/unmatched queries."""

    def test_matched_and_unmatched(self, matcher):
        """Matched pairs are reported once; unmatched transfers are counted."""
        out = transfer("-100.00", "Checking", id="out")
        incoming = transfer("100.00", "Savings", id="in")
        lonely = transfer("-7.00", "Checking", id="lonely", day=1)
        expense = make_transaction(amount="-3.00")
        linked = matcher.auto_match_transfers([out, incoming, lonely, expense])

        matches = matcher.get_matched_transfers(linked)

        assert len(matches) == 1
        assert matches[0].match_type == "exact"
        assert matches[0].amount_difference == Decimal("0")
        assert [t.id for t in matcher.get_unmatched_transfers(linked)] == ["lonely"]
        assert matcher.count_unmatched_transfers(linked) == 1

    def test_manual_match_reported_as_verified(self, matcher):
        """Existing manual links show up as verified manual matches."""
        a = transfer("-100.00", "Checking", id="a", linked_transaction_id="b",
                     notes=MANUAL_TRANSFER_NOTE)
        b = transfer("100.00", "Savings", id="b", linked_transaction_id="a",
                     notes=MANUAL_TRANSFER_NOTE)

        matches = matcher.get_matched_transfers([a, b])

        assert matches[0].match_type == "manual"
        assert matches[0].is_verified

    def test_filter_non_transfers(self, matcher):
        """Matched transfers are hidden; unmatched transfers stay visible."""
        a = transfer("-100.00", "Checking", id="a", linked_transaction_id="b")
        b = transfer("100.00", "Savings", id="b", linked_transaction_id="a")
        lonely = transfer("-5.00", "Checking", id="lonely")
        expense = make_transaction(id="expense")

        visible = matcher.filter_non_transfers([a, b, lonely, expense])

        assert [t.id for t in visible] == ["lonely", "expense"]
