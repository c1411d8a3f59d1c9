"""Shared pytest fixtures for all tests."""

import sqlite3
import pytest
from pathlib import Path

from config import Config, get_migrations_dir
from models.account import Account
from models.category import Category, CategoryCatalog, Subcategory
from services.base import Services
from tests.helpers import FakeProvider, run_migrations


@pytest.fixture
def test_db():
    """Create an in-memory SQLite database for testing.

    Yields:
        sqlite3.Connection: Connection to in-memory database.
    """
    conn = sqlite3.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture
def test_config(tmp_path):
    """Create a test configuration pointing to a temporary database.

    Args:
        tmp_path: pytest tmp_path fixture for temporary directory.

    Returns:
        Config: Test configuration object.
    """
    config = Config(
        base_dir=tmp_path / "ledgerline",
        db_data_dir=tmp_path / "ledgerline" / "db",
        db_filename="test.db",
        log_level="DEBUG",
        log_dir=tmp_path / "ledgerline" / "logs",
        llm_enabled=False,
        llm_deployments=["primary", "fallback"],
    )
    # No real waiting in tests
    config.retry.base_delay_seconds = 0.0
    config.retry.jitter = 0.0
    return config


@pytest.fixture
def db_manager_with_schema(test_db):
    """Create a DatabaseManager with schema already set up.

    This fixture provides a DatabaseManager that uses an in-memory database
    with all migrations already applied.

    Args:
        test_db: In-memory database connection fixture.

    Returns:
        DatabaseManager: Database manager with schema ready.
    """
    # Run migrations to set up schema
    migrations_dir = get_migrations_dir()
    run_migrations(test_db, migrations_dir)

    # Create a custom DatabaseManager that uses our in-memory connection
    class TestDatabaseManager:
        """Test database manager that uses in-memory connection."""

        def __init__(self, conn):
            self.conn = conn

        def connect(self):
            """Return a context manager for the test connection."""
            return _TestConnectionContext(self.conn)

        def get_db_path(self):
            """Return a fake path for the test database."""
            return Path(":memory:")

        def get_migrations_dir(self):
            """Get the migrations directory path."""
            return get_migrations_dir()

    class _TestConnectionContext:
        """Context manager for test database connections."""

        def __init__(self, conn):
            self.conn = conn

        def __enter__(self):
            return self.conn

        def __exit__(self, exc_type, exc_val, exc_tb):
            # Don't close the connection - let the fixture handle it
            pass

    return TestDatabaseManager(test_db)


@pytest.fixture
def accounts():
    """Accounts used across tests: two USD accounts and one EUR account."""
    return [
        Account(id="acc-checking", name="Checking", currency="USD"),
        Account(id="acc-savings", name="Savings", currency="USD"),
        Account(id="acc-euro", name="Euro Account", currency="EUR"),
    ]


@pytest.fixture
def catalog():
    """A small category catalog."""
    return CategoryCatalog(
        [
            Category(
                id="food",
                name="Food & Dining",
                subcategories=[
                    Subcategory(id="coffee", name="Coffee Shops"),
                    Subcategory(id="groceries", name="Groceries"),
                ],
            ),
            Category(
                id="transport",
                name="Transportation",
                subcategories=[Subcategory(id="fuel", name="Fuel")],
            ),
            Category(id="salary", name="Salary", type="income"),
            Category(id="internal-transfer", name="Internal Transfer", type="transfer"),
        ]
    )


@pytest.fixture
def fake_provider():
    """LLM provider with no scripted replies; tests script it as needed."""
    return FakeProvider()


@pytest.fixture
def services(test_config, db_manager_with_schema, accounts, fake_provider):
    """Create a Services container with test database.

    This fixture provides access to all services with a clean test database
    and a fake LLM provider.

    Returns:
        Services: Services container for testing.
    """
    services = Services(
        test_config,
        db_manager=db_manager_with_schema,
        accounts=accounts,
        provider=fake_provider,
    )
    services.classification_client.sleep = lambda seconds: None
    return services
