"""Base services container for dependency injection."""

from typing import List, Optional

from config import Config
from db.manager import DatabaseManager
from models.account import Account


class Services:
    """Container for all application services.

    This class provides a centralized way to access all services and makes
    it easy to inject mock services for testing.

    Args:
        config: Application configuration object.
        db_manager: Optional database manager for testing. If provided, config is ignored
                    for database location.
        accounts: The caller's accounts, used for account resolution and currencies.
        provider: LLM provider override. If None, one is built from config.
        transaction_store: Transaction store override (e.g. in-memory).
        rule_store: Rule store override.
    """

    def __init__(
        self,
        config: Config,
        db_manager=None,
        accounts: Optional[List[Account]] = None,
        provider=None,
        transaction_store=None,
        rule_store=None,
    ):
        """Initialize services with configuration.

        Args:
            config: Config object containing application configuration.
            db_manager: Optional database manager for dependency injection (testing).
                       If None, creates DatabaseManager from config.
        """
        self.config = config
        self.db_manager = db_manager or DatabaseManager(config)

        # Lazy import to avoid circular dependencies
        from categorization import BatchCategorizer
        from llm import get_llm_provider
        from llm.client import ClassificationClient
        from rules.engine import RuleEngine
        from services.accounts import AccountDirectory
        from services.rules import RuleService
        from services.transactions import TransactionService
        from transfers.cascade import DeletionCascade
        from transfers.matching import TransferMatcher
        from transfers.service import TransferService

        self.accounts = AccountDirectory(accounts, base_currency=config.matching.base_currency)
        self.transactions = transaction_store or TransactionService(self.db_manager)
        self.rules = rule_store or RuleService(self.db_manager)

        self.rule_engine = RuleEngine(self.rules, self.accounts)

        provider = provider if provider is not None else get_llm_provider(config)
        self.classification_client = (
            ClassificationClient(
                provider,
                config.llm_deployments,
                retry=config.retry,
                policy=config.classification,
            )
            if provider is not None
            else None
        )
        self.categorizer = BatchCategorizer(
            self.rule_engine, self.classification_client, config.classification
        )

        self.matcher = TransferMatcher(self.accounts, config.matching)
        self.transfers = TransferService(self.transactions, self.matcher)
        self.deletions = DeletionCascade(self.transactions)
