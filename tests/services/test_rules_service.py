from datetime import datetime

import pytest
import sqlite3

from models.rule import CategoryRule, RuleAction, RuleCondition


def make_rule(rule_id, priority=50, created_at=datetime(2025, 1, 1, 9, 30)):
    return CategoryRule(
        id=rule_id,
        name=f"Rule {rule_id}",
        priority=priority,
        conditions=[
            RuleCondition("description", "contains", "shell"),
            RuleCondition("amount", "between", 10, value_end=80),
        ],
        action=RuleAction(category="Transportation", subcategory="Fuel", type="expense"),
        description="Fuel stops",
        created_at=created_at,
        updated_at=created_at,
    )


class TestRuleService:
    """Tests for RuleService."""

    def test_create_and_find(self, services):
        """A stored rule reads back unchanged, conditions included."""
        rule = make_rule("r1")

        services.rules.create(rule)

        assert services.rules.find("r1") == rule

    def test_find_missing(self, services):
        """Finding an unknown rule returns None."""
        assert services.rules.find("missing") is None

    def test_create_duplicate_raises(self, services):
        """Rule ids are unique."""
        services.rules.create(make_rule("r1"))

        with pytest.raises(sqlite3.IntegrityError):
            services.rules.create(make_rule("r1"))

    def test_find_all_in_priority_order(self, services):
        """Rules come back by priority, then creation time."""
        services.rules.create(make_rule("late", created_at=datetime(2025, 2, 1)))
        services.rules.create(make_rule("user", priority=25, created_at=datetime(2025, 3, 1)))
        services.rules.create(make_rule("early", created_at=datetime(2025, 1, 1)))

        assert [r.id for r in services.rules.find_all()] == ["user", "early", "late"]

    def test_update(self, services):
        """Updates rewrite the stored rule."""
        rule = make_rule("r1")
        services.rules.create(rule)
        rule.is_active = False
        rule.action = RuleAction(category="Food & Dining")

        assert services.rules.update(rule)

        found = services.rules.find("r1")
        assert not found.is_active
        assert found.action == RuleAction(category="Food & Dining")

    def test_update_missing(self, services):
        """Updating an unknown rule reports False."""
        assert services.rules.update(make_rule("missing")) is False

    def test_clear_all(self, services):
        """clear_all removes every rule and reports how many."""
        services.rules.create(make_rule("r1"))
        services.rules.create(make_rule("r2"))

        assert services.rules.clear_all() == 2
        assert services.rules.find_all() == []
