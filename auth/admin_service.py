"""User management for administrators."""

import math
from uuid import UUID

from auth.database import UserDatabase
from auth.exceptions import UserNotFoundError
from auth.passwords import hash_password
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import User, UserUpdateRequest
from auth.validation import check_password_strength, normalize_phone, require_name

MAX_PAGE_SIZE = 100


class UserAdminService:
    """List, edit and delete user accounts."""

    def __init__(self, user_db: UserDatabase, security_logger: SecurityLogger):
        self._user_db = user_db
        self._security_logger = security_logger

    def list_users(self, page: int = 1, limit: int = 10, search: str | None = None) -> dict:
        """One page of users, newest first, with paging totals."""
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        search = search.strip() if search else None

        total = self._user_db.count_users(search)
        users = self._user_db.list_users(search, limit=limit, offset=(page - 1) * limit)
        return {
            "users": [user.model_dump(mode="json") for user in users],
            "total": total,
            "current_page": page,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    def update_user(self, user_id: UUID, update: UserUpdateRequest, admin_id: str | None = None) -> User:
        """
        Raises:
            InputValidationError: invalid name, phone or weak password.
            AlreadyExistsError: phone belongs to another account.
            UserNotFoundError: no such user.
        """
        changes = {}
        if update.first_name is not None:
            changes["first_name"] = require_name(update.first_name)
        if update.last_name is not None:
            changes["last_name"] = update.last_name or None
        if update.phone is not None:
            changes["phone"] = normalize_phone(update.phone)
        if update.is_active is not None:
            changes["is_active"] = update.is_active
        if update.password is not None:
            check_password_strength(update.password)
            changes["password_hash"] = hash_password(update.password)

        user = self._user_db.update_user(user_id, changes)
        if user is None:
            raise UserNotFoundError("User not found")

        self._security_logger.log(
            SecurityEvent.USER_UPDATED,
            email=user.email,
            user_id=user.id,
            details={
                "fields": sorted(k if k != "password_hash" else "password" for k in changes),
                "admin_id": admin_id,
            },
        )
        return user

    def delete_user(self, user_id: UUID, admin_id: str | None = None) -> None:
        """
        Raises:
            UserNotFoundError: no such user.
        """
        if not self._user_db.delete_user(user_id):
            raise UserNotFoundError("User not found")
        self._security_logger.log(
            SecurityEvent.USER_DELETED,
            user_id=user_id,
            details={"admin_id": admin_id},
        )
