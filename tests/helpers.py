"""Helper utilities for tests."""

import json
import sqlite3
import uuid
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Callable, List, Optional

from errors import OracleError
from llm.providers.base import LLMProvider
from models.transaction import Transaction


def run_migrations(conn: sqlite3.Connection, migrations_dir: Path) -> None:
    """Run all SQL migrations in order.

    Args:
        conn: SQLite connection to run migrations against.
        migrations_dir: Path to directory containing .sql migration files.
    """
    # Get all .sql files and sort them
    migration_files = sorted(migrations_dir.glob("*.sql"))

    for migration_file in migration_files:
        with open(migration_file, "r") as f:
            sql = f.read()

        # Execute the migration
        conn.executescript(sql)

    conn.commit()


def make_transaction(**overrides) -> Transaction:
    """Build a Transaction with sensible defaults."""
    amount = Decimal(str(overrides.pop("amount", "-10.00")))
    fields = {
        "id": str(uuid.uuid4()),
        "transaction_date": date(2025, 1, 15),
        "amount": amount,
        "description": "TEST TRANSACTION",
        "account": "Checking",
        "type": Transaction.infer_type(amount),
    }
    fields.update(overrides)
    return Transaction(**fields)


def requested_transactions(messages: List[dict]) -> List[dict]:
    """Pull the transaction list out of a rendered classification prompt."""
    user = messages[-1]["content"]
    start = user.index("[", user.index("Transactions to categorize"))
    return json.loads(user[start:])


def answer_all(
    category_id: str,
    subcategory_id: Optional[str] = None,
    confidence: float = 0.95,
) -> Callable[[List[dict]], str]:
    """Responder that gives every requested transaction the same answer."""

    def respond(transactions: List[dict]) -> str:
        return json.dumps(
            [
                {
                    "index": t["index"],
                    "categoryId": category_id,
                    "subcategoryId": subcategory_id,
                    "confidence": confidence,
                    "reasoning": f"Looks like {category_id}",
                }
                for t in transactions
            ]
        )

    return respond


class FakeProvider(LLMProvider):
    """Scripted LLM provider.

    Replies are consumed in order; an Exception reply is raised instead of
    returned. Once the script runs out the responder, if any, answers based
    on the transactions in the prompt.
    """

    def __init__(self, replies=None, responder=None):
        self.replies = list(replies or [])
        self.responder = responder
        self.calls = []

    def complete(self, deployment, messages, max_tokens, temperature=0.0):
        self.calls.append(
            {
                "deployment": deployment,
                "messages": messages,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "transactions": requested_transactions(messages),
            }
        )
        if self.replies:
            reply = self.replies.pop(0)
            if isinstance(reply, Exception):
                raise reply
            return reply
        if self.responder is not None:
            return self.responder(self.calls[-1]["transactions"])
        raise OracleError("No scripted reply", status_code=500)
