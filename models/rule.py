"""Classification rule models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional

from models.transaction import Transaction

RULE_FIELDS = ("description", "amount", "account", "date")
RULE_OPERATORS = (
    "equals",
    "contains",
    "starts_with",
    "ends_with",
    "regex",
    "greater_than",
    "less_than",
    "between",
)


@dataclass
class RuleCondition:
    """A single predicate over one transaction field.

    Attributes:
        field: One of RULE_FIELDS.
        operator: One of RULE_OPERATORS.
        value: Value to compare against (string, number or ISO date).
        value_end: Upper bound for 'between'.
        case_sensitive: Only meaningful for string operators.
    """

    field: str
    operator: str
    value: Any
    value_end: Any = None
    case_sensitive: bool = False

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "operator": self.operator,
            "value": self.value,
            "value_end": self.value_end,
            "case_sensitive": self.case_sensitive,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RuleCondition":
        return cls(
            field=data["field"],
            operator=data["operator"],
            value=data.get("value"),
            value_end=data.get("value_end"),
            case_sensitive=bool(data.get("case_sensitive", False)),
        )


@dataclass
class RuleAction:
    """What a matching rule does to a transaction."""

    category: str
    subcategory: Optional[str] = None
    type: Optional[str] = None  # forces 'income', 'expense' or 'transfer'


@dataclass
class CategoryRule:
    """A condition -> action mapping.

    Rules are evaluated in ascending priority, ties broken by creation time.
    All conditions must hold; a rule with no conditions never matches.
    """

    id: str
    name: str
    priority: int
    conditions: List[RuleCondition]
    action: RuleAction
    is_active: bool = True
    description: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class RuleMatchResult:
    """Result of applying the rule set to one transaction."""

    matched: bool
    transaction: Transaction
    rule: Optional[CategoryRule] = None


@dataclass
class BatchRuleResult:
    """Split of a batch into rule-matched and unmatched transactions."""

    matched: List[tuple] = field(default_factory=list)  # (Transaction, CategoryRule)
    unmatched: List[Transaction] = field(default_factory=list)
