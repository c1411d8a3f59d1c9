"""Rule service for database operations."""

import json
from datetime import datetime
from typing import List, Optional

from models.rule import CategoryRule, RuleAction, RuleCondition
from services.interfaces import RuleStore

_RULE_FIELDS = """id, name, description, priority, is_active, conditions,
       action_category, action_subcategory, action_type, created_at, updated_at"""


class RuleService(RuleStore):
    """SQLite-backed store for classification rules."""

    def __init__(self, db_manager):
        """Initialize the rule service.

        Args:
            db_manager: Database manager instance for database operations.
        """
        self.db_manager = db_manager

    def find_all(self) -> List[CategoryRule]:
        """Get all rules, ordered by priority then creation time."""
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_RULE_FIELDS} FROM category_rules ORDER BY priority, created_at"
            )
            return [self._row_to_rule(row) for row in cursor.fetchall()]

    def find(self, rule_id: str) -> Optional[CategoryRule]:
        """Get a single rule by ID.

        Returns:
            CategoryRule if found, None otherwise.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                f"SELECT {_RULE_FIELDS} FROM category_rules WHERE id = ?",
                (rule_id,),
            )
            row = cursor.fetchone()
            return self._row_to_rule(row) if row else None

    def create(self, rule: CategoryRule) -> CategoryRule:
        """Insert a new rule.

        Raises:
            sqlite3.IntegrityError: If a rule with this ID already exists.
        """
        with self.db_manager.connect() as conn:
            conn.execute(
                f"""
                INSERT INTO category_rules ({_RULE_FIELDS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._to_row(rule),
            )
            conn.commit()
        return rule

    def update(self, rule: CategoryRule) -> bool:
        """Rewrite an existing rule.

        Returns:
            True if the rule existed and was updated.
        """
        row = self._to_row(rule)
        with self.db_manager.connect() as conn:
            cursor = conn.execute(
                """
                UPDATE category_rules
                SET name = ?, description = ?, priority = ?, is_active = ?,
                    conditions = ?, action_category = ?, action_subcategory = ?,
                    action_type = ?, created_at = ?, updated_at = ?
                WHERE id = ?
                """,
                row[1:] + (row[0],),
            )
            conn.commit()
            return cursor.rowcount > 0

    def clear_all(self) -> int:
        """Delete every rule.

        Returns:
            Number of rules deleted.
        """
        with self.db_manager.connect() as conn:
            cursor = conn.execute("DELETE FROM category_rules")
            conn.commit()
            return cursor.rowcount

    def _to_row(self, rule: CategoryRule) -> tuple:
        return (
            rule.id,
            rule.name,
            rule.description,
            rule.priority,
            1 if rule.is_active else 0,
            json.dumps([c.to_dict() for c in rule.conditions]),
            rule.action.category,
            rule.action.subcategory,
            rule.action.type,
            rule.created_at.isoformat(),
            rule.updated_at.isoformat(),
        )

    def _row_to_rule(self, row: tuple) -> CategoryRule:
        """Convert a database row to a CategoryRule object."""
        return CategoryRule(
            id=row[0],
            name=row[1],
            description=row[2] or "",
            priority=row[3],
            is_active=bool(row[4]),
            conditions=[RuleCondition.from_dict(c) for c in json.loads(row[5])],
            action=RuleAction(category=row[6], subcategory=row[7], type=row[8]),
            created_at=datetime.fromisoformat(row[9]),
            updated_at=datetime.fromisoformat(row[10]),
        )
