"""
Database Connection Manager
===========================

Handles connections to both SQLite (local development) and PostgreSQL (production).
PostgreSQL is used when DATABASE_URL is set; otherwise the SQLite file at the
given path.
"""

import os
import sqlite3
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def get_database_url(db_path: Optional[str] = None) -> str:
    """
    Get database URL from the environment.

    Priority:
    1. DATABASE_URL environment variable (production)
    2. SQLite file at db_path (local development)
    """
    db_url = os.getenv("DATABASE_URL")
    if db_url:
        return db_url

    return f"sqlite:///{db_path or 'attribution.db'}"


def is_postgres(db_url: Optional[str] = None) -> bool:
    """Check if a URL (default: the configured one) points at PostgreSQL."""
    db_url = db_url or get_database_url()
    return db_url.startswith('postgresql://') or db_url.startswith('postgres://')


def get_connection(db_url: str):
    """
    Open a database connection for a URL.

    Returns:
        For SQLite: sqlite3.Connection
        For PostgreSQL: psycopg2.connection
    """
    if db_url.startswith('sqlite'):
        db_path = db_url.replace('sqlite:///', '')
        return sqlite3.connect(db_path, check_same_thread=False)

    # Only needed in production deployments
    import psycopg2

    logger.debug("Opening PostgreSQL connection")
    return psycopg2.connect(db_url)


class DatabaseAdapter:
    """
    Adapter to provide consistent interface for both SQLite and PostgreSQL.
    Handles SQL syntax differences between the two databases.
    """

    def __init__(self, conn, postgres: bool = False):
        self.conn = conn
        self.is_postgres = postgres

    def convert_placeholders(self, sql: str) -> str:
        """Convert ? placeholders to %s for PostgreSQL."""
        if self.is_postgres and '?' in sql:
            return sql.replace('?', '%s')
        return sql

    def execute(self, sql: str, params: tuple = ()):
        """Execute SQL with automatic parameter placeholder conversion."""
        cursor = self.conn.cursor()
        cursor.execute(self.convert_placeholders(sql), params)
        return cursor

    def commit(self):
        """Commit transaction."""
        self.conn.commit()

    def rollback(self):
        """Rollback transaction."""
        self.conn.rollback()

    def close(self):
        """Close connection."""
        self.conn.close()
