"""
Authentication and Tenant Scoping
=================================

Sessions for API callers. Every user belongs to one organization, and the
organization is the tenant that scopes which opportunities are visible.
The attribution core never sees this module; the API resolves a session to
a tenant before any computation starts.
"""

import hashlib
import logging
import secrets
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import Optional
from dataclasses import dataclass
from enum import Enum

import config
from exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class UserRole(str, Enum):
    """User roles for access control."""
    ADMIN = "admin"            # Full access, can manage users
    ANALYST = "analyst"        # Can view attribution and export data
    VIEWER = "viewer"          # Read-only access to attribution


@dataclass
class User:
    """User account."""
    id: int
    email: str
    name: str
    role: UserRole
    organization_id: str
    password_hash: str
    salt: str
    is_active: bool = True
    created_at: datetime = None

    @property
    def tenant_id(self) -> str:
        return self.organization_id


class AuthManager:
    """Manages user authentication and sessions.

    One connection is shared by the API worker threads; every statement and
    its commit run under _lock.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._create_tables()

    def _create_tables(self):
        """Create authentication tables."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS organizations (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT NOT NULL UNIQUE,
                name TEXT NOT NULL,
                role TEXT NOT NULL,
                organization_id TEXT NOT NULL,
                password_hash TEXT NOT NULL,
                salt TEXT NOT NULL,
                is_active INTEGER DEFAULT 1,
                created_at TEXT NOT NULL,
                FOREIGN KEY (organization_id) REFERENCES organizations(id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                session_id TEXT PRIMARY KEY,
                user_id INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL,
                is_active INTEGER DEFAULT 1,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_users_email ON users(email)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_user ON sessions(user_id)")

        self.conn.commit()

    @staticmethod
    def hash_password(password: str, salt: Optional[str] = None) -> tuple[str, str]:
        """Hash password with PBKDF2 and salt."""
        if not salt:
            salt = secrets.token_hex(32)

        pwd_hash = hashlib.pbkdf2_hmac(
            'sha256',
            password.encode('utf-8'),
            salt.encode('utf-8'),
            100000  # iterations
        )
        return pwd_hash.hex(), salt

    @staticmethod
    def verify_password(password: str, pwd_hash: str, salt: str) -> bool:
        """Verify password against hash."""
        new_hash, _ = AuthManager.hash_password(password, salt)
        return secrets.compare_digest(new_hash, pwd_hash)

    # ========================================================================
    # Organizations and Users
    # ========================================================================

    def create_organization(self, org_id: str, name: str) -> None:
        """Create a new organization (tenant)."""
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO organizations (id, name, created_at)
                VALUES (?, ?, ?)
            """, (org_id, name, datetime.now().isoformat()))
            self.conn.commit()

    def create_user(
        self,
        email: str,
        name: str,
        password: str,
        role: UserRole,
        organization_id: str
    ) -> int:
        """Create a new user account."""
        pwd_hash, salt = self.hash_password(password)

        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO users (email, name, role, organization_id, password_hash, salt, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (email.lower(), name, role.value, organization_id, pwd_hash, salt, datetime.now().isoformat()))
            self.conn.commit()
            return cursor.lastrowid

    def _get_user(self, column: str, value) -> Optional[User]:
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute(f"SELECT * FROM users WHERE {column} = ?", (value,))
            row = cursor.fetchone()

        if not row:
            return None

        return User(
            id=row['id'],
            email=row['email'],
            name=row['name'],
            role=UserRole(row['role']),
            organization_id=row['organization_id'],
            password_hash=row['password_hash'],
            salt=row['salt'],
            is_active=bool(row['is_active']),
            created_at=datetime.fromisoformat(row['created_at'])
        )

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        return self._get_user("email", email.lower())

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        return self._get_user("id", user_id)

    def deactivate_user(self, user_id: int) -> None:
        """Deactivate a user account."""
        with self._lock:
            self.conn.execute("UPDATE users SET is_active = 0 WHERE id = ?", (user_id,))
            self.conn.commit()

    # ========================================================================
    # Authentication and Sessions
    # ========================================================================

    def authenticate(self, email: str, password: str) -> Optional[User]:
        """Authenticate user with email and password."""
        user = self.get_user_by_email(email)

        if not user or not user.is_active:
            return None

        if not self.verify_password(password, user.password_hash, user.salt):
            return None

        return user

    def create_session(self, user_id: int, duration_hours: int = config.SESSION_DURATION_HOURS) -> str:
        """Create a new session for a user."""
        session_id = secrets.token_urlsafe(32)
        created_at = datetime.now()
        expires_at = created_at + timedelta(hours=duration_hours)

        with self._lock:
            self.conn.execute("""
                INSERT INTO sessions (session_id, user_id, created_at, expires_at)
                VALUES (?, ?, ?, ?)
            """, (session_id, user_id, created_at.isoformat(), expires_at.isoformat()))
            self.conn.commit()

        return session_id

    def get_session_user(self, session_id: str) -> Optional[User]:
        """Get the active user for a session ID, or None."""
        with self._lock:
            row = self.conn.execute("""
                SELECT * FROM sessions
                WHERE session_id = ? AND is_active = 1
            """, (session_id,)).fetchone()

        if not row:
            return None

        if datetime.fromisoformat(row['expires_at']) < datetime.now():
            self.invalidate_session(session_id)
            return None

        user = self.get_user_by_id(row['user_id'])
        if user is None or not user.is_active:
            return None
        return user

    def require_session_user(self, session_id: Optional[str]) -> User:
        """
        Resolve a session to its user.

        Raises AuthenticationError for a missing, unknown, expired or
        deactivated session.
        """
        if not session_id:
            raise AuthenticationError("Missing session token")

        user = self.get_session_user(session_id)
        if user is None:
            logger.info("Rejected request with invalid or expired session")
            raise AuthenticationError("Invalid or expired session")
        return user

    def invalidate_session(self, session_id: str) -> None:
        """Invalidate a session."""
        with self._lock:
            self.conn.execute("UPDATE sessions SET is_active = 0 WHERE session_id = ?", (session_id,))
            self.conn.commit()

    # ========================================================================
    # Access Control
    # ========================================================================

    @staticmethod
    def can_export_data(user: User) -> bool:
        """Check if user can export data."""
        return user.role in [UserRole.ADMIN, UserRole.ANALYST]

    def close(self):
        """Close database connection."""
        with self._lock:
            self.conn.close()


def create_default_organization_and_admin(
    auth: AuthManager,
    org_id: str = "ORG001",
    org_name: str = "Default Organization",
    admin_email: str = "admin@attribution.local",
    admin_password: str = "admin123"
) -> None:
    """Create default organization and admin user for initial setup."""
    try:
        auth.create_organization(org_id, org_name)
    except sqlite3.IntegrityError:
        logger.debug(f"Organization {org_id} already exists")

    try:
        auth.create_user(
            email=admin_email,
            name="System Administrator",
            password=admin_password,
            role=UserRole.ADMIN,
            organization_id=org_id
        )
        logger.info(f"Default admin created: {admin_email}")
    except sqlite3.IntegrityError:
        logger.debug(f"Admin {admin_email} already exists")
