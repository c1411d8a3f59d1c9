from models.account import Account
from services.accounts import AccountDirectory


class TestAccountDirectory:
    """Tests for AccountDirectory."""

    def test_resolve_by_id_or_name(self, services):
        """Accounts resolve by id first, then case-insensitively by name."""
        assert services.accounts.resolve("acc-savings").name == "Savings"
        assert services.accounts.resolve("savings").id == "acc-savings"
        assert services.accounts.resolve("nope") is None
        assert services.accounts.resolve(None) is None

    def test_display_name(self, services):
        """Known references show the account name; unknown ones show themselves."""
        assert services.accounts.display_name("acc-checking") == "Checking"
        assert services.accounts.display_name("Brokerage") == "Brokerage"

    def test_same_account(self, services):
        """Id and name references to one account compare equal."""
        assert services.accounts.same_account("acc-checking", "CHECKING")
        assert not services.accounts.same_account("acc-checking", "Savings")
        assert services.accounts.same_account("Brokerage ", "brokerage")

    def test_currency(self, services):
        """Currency comes from the account, defaulting to the base currency."""
        assert services.accounts.currency_of("Euro Account") == "EUR"
        assert services.accounts.currency_of("Brokerage") == "USD"

    def test_base_currency_override(self):
        """Unknown accounts take the configured base currency."""
        directory = AccountDirectory([Account(id="a1", name="Giro", currency="EUR")],
                                     base_currency="EUR")

        assert directory.currency_of("unknown") == "EUR"
        assert directory.find_all() == [Account(id="a1", name="Giro", currency="EUR")]

    def test_account_to_dict(self):
        """Accounts serialize to a plain dict."""
        account = Account(id="a1", name="Giro", currency="EUR")

        assert account.to_dict() == {"id": "a1", "name": "Giro", "currency": "EUR"}
