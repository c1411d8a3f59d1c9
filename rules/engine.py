"""Priority-ordered rule engine for transaction classification."""

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from models.rule import (
    BatchRuleResult,
    CategoryRule,
    RuleAction,
    RuleCondition,
    RuleMatchResult,
)
from models.transaction import INTERNAL_TRANSFER, Transaction
from rules.conditions import evaluate_condition
from services.accounts import AccountDirectory
from services.interfaces import RuleStore
from logger import get_logger

logger = get_logger()

AUTO_RULE_PRIORITY = 50
USER_RULE_PRIORITY = 25
USER_RULE_OPERATORS = ("equals", "contains", "starts_with")
TRANSFER_RULE_PRIORITY = 10
BANK_FEE_RULE_PRIORITY = 5

TRANSFER_RULE_PREFIX = "Transfer Detection: "
BANK_FEE_RULE_NAME = "Bank Fee Protection"

TRANSFER_KEYWORDS = (
    # electronic
    "ach transfer", "ach credit", "ach debit", "ach payment",
    "electronic transfer", "wire transfer", "bank transfer",
    # internal
    "transfer to", "transfer from", "internal transfer",
    "account transfer", "between accounts",
    "automatic payment", "auto payment", "autopay",
    "online transfer", "mobile transfer", "zelle",
    # cash
    "atm withdrawal", "cash withdrawal", "withdrawal",
    "atm deposit", "cash deposit", "deposit",
    "transfer", "tfr", "xfer", "move money",
    "payment transfer", "fund transfer",
    "quickpay", "popmoney", "clearxchange",
)

# Fees that mention transfers or withdrawals but are not transfers
BANK_FEE_KEYWORDS = (
    "overdraft fee", "nsf fee", "insufficient funds",
    "maintenance fee", "monthly fee", "service charge",
    "atm fee", "foreign transaction fee", "wire fee",
    "late fee", "returned item", "stop payment",
)


class RuleEngine:
    """Applies stored rules to transactions, first match wins.

    Args:
        rule_store: Where rules are read from and written to.
        accounts: Used to resolve account references in 'account' conditions.
    """

    def __init__(self, rule_store: RuleStore, accounts: Optional[AccountDirectory] = None):
        self.rule_store = rule_store
        self.accounts = accounts or AccountDirectory()

    def _active_rules(self) -> List[CategoryRule]:
        rules = [r for r in self.rule_store.find_all() if r.is_active]
        return sorted(rules, key=lambda r: (r.priority, r.created_at))

    def _rule_matches(self, rule: CategoryRule, transaction: Transaction) -> bool:
        if not rule.conditions:
            return False
        return all(evaluate_condition(transaction, c, self.accounts) for c in rule.conditions)

    def _apply_action(self, rule: CategoryRule, transaction: Transaction) -> Transaction:
        result = replace(
            transaction,
            category=rule.action.category,
            subcategory=rule.action.subcategory,
            confidence=1.0,
            reasoning=f"Matched rule: {rule.name}",
        )
        if rule.action.type:
            result.type = rule.action.type
        else:
            result.type = Transaction.infer_type(result.amount)
        # Internal Transfer wins over whatever the rule asked for
        result.enforce_type_invariant()
        return result

    def _match(self, transaction: Transaction, rules: List[CategoryRule]) -> RuleMatchResult:
        for rule in rules:
            if self._rule_matches(rule, transaction):
                return RuleMatchResult(
                    matched=True,
                    transaction=self._apply_action(rule, transaction),
                    rule=rule,
                )
        return RuleMatchResult(matched=False, transaction=transaction)

    def apply_rules(self, transaction: Transaction) -> RuleMatchResult:
        """Apply the first matching active rule to a transaction.

        The input is never modified; a matched result carries a classified copy.
        """
        return self._match(transaction, self._active_rules())

    def apply_rules_to_batch(self, transactions: List[Transaction]) -> BatchRuleResult:
        """Split a batch into rule-matched and unmatched transactions.

        Rules are loaded once for the whole batch.
        """
        rules = self._active_rules()
        result = BatchRuleResult()
        for transaction in transactions:
            match = self._match(transaction, rules)
            if match.matched:
                result.matched.append((match.transaction, match.rule))
            else:
                result.unmatched.append(transaction)

        if transactions:
            logger.debug(
                f"Rules matched {len(result.matched)} of {len(transactions)} transaction(s)"
            )
        return result

    def create_auto_rule(
        self,
        account: str,
        description: str,
        category: str,
        subcategory: Optional[str] = None,
        confidence: float = 1.0,
    ) -> CategoryRule:
        """Create a rule from a confident classification.

        The rule matches any description containing this one, ignoring case.
        If an active auto-rule already covers the description it is returned
        unchanged.
        """
        existing = self._find_auto_rule(description)
        if existing is not None:
            return existing

        now = datetime.now()
        rule = CategoryRule(
            id=str(uuid.uuid4()),
            name=f"Auto: {self.accounts.display_name(account)} - {description[:30]}",
            priority=AUTO_RULE_PRIORITY,
            conditions=[
                RuleCondition(
                    field="description",
                    operator="contains",
                    value=description,
                    case_sensitive=False,
                )
            ],
            action=RuleAction(category=category, subcategory=subcategory),
            description=f"Created from classification at {confidence:.2f} confidence",
            created_at=now,
            updated_at=now,
        )
        self.rule_store.create(rule)
        logger.info(f"Created auto-rule '{rule.name}' -> {category}")
        return rule

    def _find_auto_rule(self, description: str) -> Optional[CategoryRule]:
        lowered = description.lower()
        for rule in self.rule_store.find_all():
            if rule.priority != AUTO_RULE_PRIORITY or not rule.is_active:
                continue
            if len(rule.conditions) != 1:
                continue
            condition = rule.conditions[0]
            if (
                condition.field == "description"
                and condition.operator == "contains"
                and str(condition.value).lower() == lowered
            ):
                return rule
        return None

    def create_user_rule(
        self,
        account: str,
        description: str,
        category: str,
        subcategory: Optional[str] = None,
        operator: str = "equals",
        forced_type: Optional[str] = None,
    ) -> CategoryRule:
        """Create or update a rule from a manual categorization.

        User rules are keyed by account and description and rank ahead of
        auto-rules.

        Raises:
            ValueError: If operator is not one of USER_RULE_OPERATORS.
        """
        if operator not in USER_RULE_OPERATORS:
            raise ValueError(f"Unsupported operator for user rule: {operator}")

        account_name = self.accounts.display_name(account)
        name = f"User: {account_name} - {description[:30]}"
        conditions = [
            RuleCondition(field="account", operator="equals", value=account_name),
            RuleCondition(field="description", operator=operator, value=description),
        ]
        action = RuleAction(category=category, subcategory=subcategory, type=forced_type)

        for rule in self.rule_store.find_all():
            if rule.priority == USER_RULE_PRIORITY and self._same_key(rule, account_name, description):
                updated = replace(
                    rule,
                    conditions=conditions,
                    action=action,
                    is_active=True,
                    updated_at=datetime.now(),
                )
                self.rule_store.update(updated)
                logger.info(f"Updated user rule '{updated.name}' -> {category}")
                return updated

        now = datetime.now()
        rule = CategoryRule(
            id=str(uuid.uuid4()),
            name=name,
            priority=USER_RULE_PRIORITY,
            conditions=conditions,
            action=action,
            description="Created from manual categorization",
            created_at=now,
            updated_at=now,
        )
        self.rule_store.create(rule)
        logger.info(f"Created user rule '{rule.name}' -> {category}")
        return rule

    def _same_key(self, rule: CategoryRule, account_name: str, description: str) -> bool:
        values: Dict[str, str] = {c.field: str(c.value) for c in rule.conditions}
        return (
            values.get("account", "").lower() == account_name.lower()
            and values.get("description", "").lower() == description.lower()
        )

    def initialize_transfer_rules(self) -> int:
        """Seed the rules that recognise transfers before any LLM call.

        Creates one priority-10 rule per transfer keyword, classifying
        matching descriptions as Internal Transfer, and a priority-5 rule
        that keeps bank fees out of that net. Keywords already covered by a
        rule of the same name or by a description 'contains' condition are
        skipped, so running this again creates nothing.

        Returns:
            Number of rules created.
        """
        rules = self.rule_store.find_all()
        created = 0

        for keyword in TRANSFER_KEYWORDS:
            if self._keyword_covered(rules, keyword):
                continue
            rule = self._seed_rule(
                name=f"{TRANSFER_RULE_PREFIX}{keyword}",
                priority=TRANSFER_RULE_PRIORITY,
                condition=RuleCondition(
                    field="description", operator="contains", value=keyword, case_sensitive=False
                ),
                action=RuleAction(
                    category=INTERNAL_TRANSFER, subcategory="Between Accounts", type="transfer"
                ),
                description=f'Detects transfer transactions containing "{keyword}"',
            )
            rules.append(rule)
            created += 1

        if not any(r.name == BANK_FEE_RULE_NAME for r in rules):
            pattern = "|".join(k.replace(" ", r"\s+") for k in BANK_FEE_KEYWORDS)
            self._seed_rule(
                name=BANK_FEE_RULE_NAME,
                priority=BANK_FEE_RULE_PRIORITY,
                condition=RuleCondition(
                    field="description", operator="regex", value=pattern, case_sensitive=False
                ),
                action=RuleAction(category="Financial", subcategory="Bank Fees"),
                description="Keeps bank fees from being classified as transfers",
            )
            created += 1

        logger.info(f"Transfer detection rules initialized: {created} new rule(s)")
        return created

    def _keyword_covered(self, rules: List[CategoryRule], keyword: str) -> bool:
        for rule in rules:
            if rule.name.lower() == f"{TRANSFER_RULE_PREFIX}{keyword}".lower():
                return True
            for condition in rule.conditions:
                if (
                    condition.field == "description"
                    and condition.operator == "contains"
                    and isinstance(condition.value, str)
                    and condition.value.lower() == keyword
                ):
                    return True
        return False

    def _seed_rule(
        self,
        name: str,
        priority: int,
        condition: RuleCondition,
        action: RuleAction,
        description: str,
    ) -> CategoryRule:
        now = datetime.now()
        rule = CategoryRule(
            id=str(uuid.uuid4()),
            name=name,
            priority=priority,
            conditions=[condition],
            action=action,
            description=description,
            created_at=now,
            updated_at=now,
        )
        self.rule_store.create(rule)
        logger.debug(f"Created rule '{name}'")
        return rule

    def deactivate_rule(self, rule_id: str) -> bool:
        """Turn a rule off. Rules are never deleted by the pipeline.

        Returns:
            True if the rule existed.
        """
        rule = self.rule_store.find(rule_id)
        if rule is None:
            logger.warning(f"Rule not found: {rule_id}")
            return False
        if not rule.is_active:
            return True
        self.rule_store.update(replace(rule, is_active=False, updated_at=datetime.now()))
        logger.info(f"Deactivated rule '{rule.name}'")
        return True

    def get_stats(self) -> Dict[str, int]:
        rules = self.rule_store.find_all()
        active = sum(1 for r in rules if r.is_active)
        return {
            "total": len(rules),
            "active": active,
            "inactive": len(rules) - active,
            "auto": sum(1 for r in rules if r.priority == AUTO_RULE_PRIORITY),
            "user": sum(1 for r in rules if r.priority == USER_RULE_PRIORITY),
            "detection": sum(
                1 for r in rules if r.priority in (TRANSFER_RULE_PRIORITY, BANK_FEE_RULE_PRIORITY)
            ),
        }
