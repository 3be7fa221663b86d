"""Audit trail of authentication activity.

Rows go to the append-only security_events table and a one-line summary
to the application log. Only who, what and from where is recorded: codes,
passwords and tokens never reach this module.
"""

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    OTP_REQUESTED = "otp_requested"
    OTP_SENT = "otp_sent"
    OTP_DELIVERY_FAILED = "otp_delivery_failed"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"
    REGISTRATION_STARTED = "registration_started"
    REGISTRATION_COMPLETED = "registration_completed"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    FEDERATED_LOGIN = "federated_login"
    FEDERATED_LOGIN_FAILED = "federated_login_failed"
    ADMIN_LOGIN_SUCCEEDED = "admin_login_succeeded"
    ADMIN_LOGIN_FAILED = "admin_login_failed"
    ADMIN_BOOTSTRAPPED = "admin_bootstrapped"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"
    RATE_LIMITED = "rate_limited"


_INSERT_EVENT = """
    INSERT INTO security_events
        (event_type, email, user_id, ip_address, user_agent, details, created_at)
    VALUES
        (%(event_type)s, %(email)s, %(user_id)s, %(ip_address)s,
         %(user_agent)s, %(details)s, %(created_at)s)
"""


class SecurityLogger:
    """Appends to security_events."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: UUID | str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        logger.info(f"security event {event.value} email={email} user_id={user_id} ip={ip_address}")
        self._db.execute(
            _INSERT_EVENT,
            {
                "event_type": event.value,
                "email": email,
                "user_id": str(user_id) if user_id else None,
                "ip_address": ip_address,
                "user_agent": user_agent,
                "details": Json(details) if details else None,
                "created_at": now_utc(),
            },
        )
