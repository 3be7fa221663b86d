"""Credential store: users and admins in PostgreSQL.

Email uniqueness is enforced by the database (unique index on lower(email)),
not by read-then-write checks here. Two racing inserts for one email end
with exactly one row and an AlreadyExistsError for the loser.
"""

from typing import Any
from uuid import UUID

from psycopg2 import errors as pg_errors

from clients.postgres_client import PostgresClient
from auth.exceptions import AlreadyExistsError
from auth.types import Admin, NewUser, User
from utils.timezone import now_utc

_USER_COLUMNS = """id, first_name, last_name, email, phone, password_hash,
    google_id, facebook_id, is_active, email_verified, email_verified_at,
    created_at, updated_at"""

_ADMIN_COLUMNS = "id, email, first_name, password_hash, role, created_at"

PROVIDER_COLUMNS = {"google": "google_id", "facebook": "facebook_id"}

# Columns an admin may change through update_user
UPDATABLE_USER_FIELDS = ("first_name", "last_name", "phone", "is_active", "password_hash")


def _to_user(row: dict[str, Any] | None) -> User | None:
    if row is None:
        return None
    return User.model_validate(row)


def _to_admin(row: dict[str, Any] | None) -> Admin | None:
    if row is None:
        return None
    return Admin.model_validate(row)


class UserDatabase:
    """Database operations for users and admins."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # =========================================================================
    # USERS
    # =========================================================================

    def get_user_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive)."""
        return _to_user(self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE lower(email) = lower(%s)",
            (email,),
        ))

    def get_user_by_phone(self, phone: str) -> User | None:
        """Find user by normalized phone number."""
        return _to_user(self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE phone = %s",
            (phone,),
        ))

    def get_user_by_id(self, user_id: UUID) -> User | None:
        """Find user by ID."""
        return _to_user(self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (str(user_id),),
        ))

    def create_user(self, new_user: NewUser) -> User:
        """Insert a user (email lowercased).

        Raises:
            AlreadyExistsError: email (or phone) already taken.
        """
        try:
            rows = self._db.execute_returning(
                f"""INSERT INTO users
                       (first_name, last_name, email, phone, password_hash,
                        google_id, facebook_id, email_verified, email_verified_at)
                    VALUES (%s, %s, lower(%s), %s, %s, %s, %s, %s, %s)
                    RETURNING {_USER_COLUMNS}""",
                (
                    new_user.first_name,
                    new_user.last_name,
                    new_user.email,
                    new_user.phone,
                    new_user.password_hash,
                    new_user.google_id,
                    new_user.facebook_id,
                    new_user.email_verified,
                    new_user.email_verified_at,
                ),
            )
        except pg_errors.UniqueViolation:
            raise AlreadyExistsError("User already exists")
        return _to_user(rows[0])

    def update_user(self, user_id: UUID, changes: dict[str, Any]) -> User | None:
        """Apply whitelisted column changes. Returns None if user not found.

        Raises:
            ValueError: a column outside UPDATABLE_USER_FIELDS.
            AlreadyExistsError: new phone belongs to someone else.
        """
        unknown = set(changes) - set(UPDATABLE_USER_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not changes:
            return self.get_user_by_id(user_id)

        assignments = ", ".join(f"{column} = %s" for column in changes)
        params = (*changes.values(), now_utc(), str(user_id))
        try:
            rows = self._db.execute_returning(
                f"""UPDATE users SET {assignments}, updated_at = %s
                    WHERE id = %s RETURNING {_USER_COLUMNS}""",
                params,
            )
        except pg_errors.UniqueViolation:
            raise AlreadyExistsError("Phone number already in use")
        return _to_user(rows[0]) if rows else None

    def attach_provider_id(self, user_id: UUID, provider: str, provider_id: str) -> User | None:
        """Record a federated provider id on an existing user."""
        column = PROVIDER_COLUMNS[provider]
        rows = self._db.execute_returning(
            f"""UPDATE users SET {column} = %s, updated_at = %s
                WHERE id = %s RETURNING {_USER_COLUMNS}""",
            (provider_id, now_utc(), str(user_id)),
        )
        return _to_user(rows[0]) if rows else None

    def mark_email_verified(self, user_id: UUID) -> User | None:
        """Set email_verified, keeping the first verification timestamp."""
        now = now_utc()
        rows = self._db.execute_returning(
            f"""UPDATE users
                SET email_verified = true,
                    email_verified_at = COALESCE(email_verified_at, %s),
                    updated_at = %s
                WHERE id = %s RETURNING {_USER_COLUMNS}""",
            (now, now, str(user_id)),
        )
        return _to_user(rows[0]) if rows else None

    def update_password(self, user_id: UUID, password_hash: str) -> bool:
        """Replace the password hash. False if user not found."""
        rows = self._db.execute_returning(
            "UPDATE users SET password_hash = %s, updated_at = %s WHERE id = %s RETURNING id",
            (password_hash, now_utc(), str(user_id)),
        )
        return len(rows) > 0

    def delete_user(self, user_id: UUID) -> bool:
        """Permanently delete user. False if not found."""
        rows = self._db.execute_returning(
            "DELETE FROM users WHERE id = %s RETURNING id",
            (str(user_id),),
        )
        return len(rows) > 0

    def count_users(self, search: str | None = None) -> int:
        where, params = self._search_clause(search)
        return self._db.execute_scalar(f"SELECT count(*) FROM users {where}", params) or 0

    def list_users(self, search: str | None = None, limit: int = 10, offset: int = 0) -> list[User]:
        """Newest first, optionally filtered by name/email substring."""
        where, params = self._search_clause(search)
        rows = self._db.execute(
            f"""SELECT {_USER_COLUMNS} FROM users {where}
                ORDER BY created_at DESC LIMIT %s OFFSET %s""",
            (*params, limit, offset),
        )
        return [_to_user(row) for row in rows]

    @staticmethod
    def _search_clause(search: str | None) -> tuple[str, tuple]:
        if not search:
            return "", ()
        pattern = f"%{search}%"
        return (
            "WHERE first_name ILIKE %s OR last_name ILIKE %s OR email ILIKE %s",
            (pattern, pattern, pattern),
        )

    # =========================================================================
    # ADMINS
    # =========================================================================

    def get_admin_by_email(self, email: str) -> Admin | None:
        return _to_admin(self._db.execute_single(
            f"SELECT {_ADMIN_COLUMNS} FROM admins WHERE lower(email) = lower(%s)",
            (email,),
        ))

    def create_admin(self, email: str, password_hash: str, first_name: str = "Admin") -> Admin:
        """
        Raises:
            AlreadyExistsError: an admin with this email exists.
        """
        try:
            rows = self._db.execute_returning(
                f"""INSERT INTO admins (email, first_name, password_hash)
                    VALUES (lower(%s), %s, %s)
                    RETURNING {_ADMIN_COLUMNS}""",
                (email, first_name, password_hash),
            )
        except pg_errors.UniqueViolation:
            raise AlreadyExistsError("Admin already exists")
        return _to_admin(rows[0])

    def count_admins(self) -> int:
        return self._db.execute_scalar("SELECT count(*) FROM admins") or 0
