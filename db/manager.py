"""Database manager for SQLite connections, paths and schema migrations."""

import sqlite3
from contextlib import contextmanager
from typing import List, Set

from config import Config, get_migrations_dir
from logger import get_logger

logger = get_logger()


class DatabaseManager:
    """Manages database connections and paths.

    Args:
        config: Application configuration object.
    """

    def __init__(self, config: Config):
        """Initialize the database manager.

        Args:
            config: Config object containing database configuration.
        """
        self.config = config

    @contextmanager
    def connect(self):
        """Get a database connection with automatic cleanup.

        Yields:
            sqlite3.Connection: Database connection.
        """
        db_path = self.config.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(db_path)
        try:
            yield conn
        finally:
            conn.close()

    def get_db_path(self):
        """Get the current database path.

        Returns:
            Path: Path to the database file.
        """
        return self.config.db_path

    def get_migrations_dir(self):
        """Get the migrations directory path.

        Returns:
            Path: Path to the migrations directory.
        """
        return get_migrations_dir()

    def apply_migrations(self) -> List[str]:
        """Apply every pending SQL migration in filename order.

        Returns:
            Names of the migrations applied by this call.
        """
        with self.connect() as conn:
            return apply_pending_migrations(conn, self.get_migrations_dir())


def init_schema_migrations_table(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_migrations (
            migration_file TEXT PRIMARY KEY,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.commit()


def get_applied_migrations(conn: sqlite3.Connection) -> Set[str]:
    cursor = conn.execute(
        "SELECT migration_file FROM schema_migrations ORDER BY migration_file"
    )
    return {row[0] for row in cursor.fetchall()}


def apply_pending_migrations(conn: sqlite3.Connection, migrations_dir) -> List[str]:
    """Run migrations from migrations_dir that are not yet recorded."""
    init_schema_migrations_table(conn)
    applied = get_applied_migrations(conn)

    newly_applied = []
    for migration_path in sorted(migrations_dir.glob("*.sql")):
        if migration_path.name in applied:
            continue

        with open(migration_path, "r") as f:
            sql = f.read()

        try:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_migrations (migration_file) VALUES (?)",
                (migration_path.name,),
            )
            conn.commit()
            logger.info(f"Applied migration: {migration_path.name}")
            newly_applied.append(migration_path.name)
        except Exception as e:
            conn.rollback()
            logger.error(f"Error applying migration {migration_path.name}: {e}")
            raise

    return newly_applied
