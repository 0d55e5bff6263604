"""
Database operations and schema management.

Supports both SQLite (local development) and PostgreSQL (production).
The attribution core only reads from this store; writes happen through
seeding and the tests.
"""

import logging
from typing import Optional

import pandas as pd

from db_connection import get_connection, get_database_url, is_postgres, DatabaseAdapter

logger = logging.getLogger(__name__)


class Database:
    """Database connection and operations manager supporting SQLite and PostgreSQL."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database (ignored if using PostgreSQL)
        """
        self.db_path = db_path or "attribution.db"
        self.db_url = get_database_url(self.db_path)
        self._is_postgres = is_postgres(self.db_url)
        self._conn = None

    @property
    def is_postgres(self) -> bool:
        """Check if using PostgreSQL."""
        return self._is_postgres

    def get_conn(self):
        """Get a database connection."""
        if self._is_postgres:
            # For PostgreSQL, reuse connection
            if self._conn is None:
                self._conn = get_connection(self.db_url)
            return self._conn
        # For SQLite, create new connection each time for thread safety
        return get_connection(self.db_url)

    def run_sql(self, sql: str, params: tuple = ()) -> None:
        """Execute a SQL statement that modifies data."""
        conn = self.get_conn()
        adapter = DatabaseAdapter(conn, self._is_postgres)
        try:
            adapter.execute(sql, params)
            adapter.commit()
            logger.debug(f"Executed SQL: {sql[:100]}... with params {params}")
        except Exception as e:
            logger.error(f"Error executing SQL: {e}")
            adapter.rollback()
            raise
        finally:
            if not self._is_postgres:
                conn.close()

    def read_sql(self, sql: str, params: tuple = ()) -> pd.DataFrame:
        """Execute a SQL query and return results as DataFrame."""
        conn = self.get_conn()
        adapter = DatabaseAdapter(conn, self._is_postgres)
        try:
            df = pd.read_sql_query(adapter.convert_placeholders(sql), conn, params=params)
            logger.debug(f"Read SQL: {sql[:100]}... returned {len(df)} rows")
            return df
        except Exception as e:
            logger.error(f"Error reading SQL: {e}")
            raise
        finally:
            if not self._is_postgres:
                conn.close()

    def init_db(self) -> None:
        """Initialize database schema."""
        logger.info(f"Initializing database schema ({'PostgreSQL' if self._is_postgres else 'SQLite'})...")

        self.run_sql("""
        CREATE TABLE IF NOT EXISTS opportunities (
            opportunity_id TEXT PRIMARY KEY,
            tenant_id TEXT NOT NULL,
            opportunity_name TEXT NOT NULL,
            amount REAL NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'OPEN',
            stage TEXT,
            owner_id TEXT,
            lead_source TEXT,
            created_at TEXT NOT NULL,
            actual_close_date TEXT
        );
        """)

        self.run_sql("""
        CREATE TABLE IF NOT EXISTS activities (
            activity_id TEXT PRIMARY KEY,
            opportunity_id TEXT NOT NULL,
            activity_type TEXT NOT NULL,
            subject TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (opportunity_id) REFERENCES opportunities(opportunity_id)
        );
        """)

        self.run_sql("CREATE INDEX IF NOT EXISTS idx_opportunities_tenant ON opportunities(tenant_id, status);")
        self.run_sql("CREATE INDEX IF NOT EXISTS idx_activities_opportunity ON activities(opportunity_id);")

        logger.info("Database schema ready")

    def seed_data_if_empty(self) -> None:
        """Seed demo data if database is empty."""
        existing = self.read_sql("SELECT COUNT(*) AS c FROM opportunities;")
        if int(existing.loc[0, "c"]) > 0:
            logger.info("Database already has data, skipping seed")
            return

        # Imported here: demo_data builds on the repository, which imports this module
        from demo_data import seed_demo_data

        logger.info("Seeding demo data...")
        seed_demo_data(self)
        logger.info("Demo data seeding complete")

    def reset_demo(self) -> None:
        """Delete all opportunities and activities, then reseed."""
        self.run_sql("DELETE FROM activities;")
        self.run_sql("DELETE FROM opportunities;")
        self.seed_data_if_empty()

    def close(self) -> None:
        """Close a reused PostgreSQL connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
