"""Two-phase registration: nothing reaches the credential store unverified.

Phase one validates the request, hashes the password and parks a
PendingRegistration (with its code) in Valkey under
`registration:<email>`. Phase two checks the code, promotes the payload to
a User and returns a bearer token, so a verified registration is also a
login.
"""

import logging

from auth.config import AuthConfig
from auth.database import UserDatabase
from auth.dispatcher import NotificationDispatcher
from auth.exceptions import (
    AlreadyExistsError,
    CodeExpiredError,
    CodeMismatchError,
    RateLimitedError,
)
from auth.identity import IdentityResolver
from auth.otp import OtpDispatchResult, codes_match, dispatch_result, generate_code
from auth.passwords import hash_password
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.tokens import TokenIssuer
from auth.types import AuthenticatedUser, PendingRegistration
from auth.validation import check_password_strength, normalize_email, require_name
from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc, seconds_since

logger = logging.getLogger(__name__)


class RegistrationWorkflow:
    """Start and complete email-verified registrations."""

    KEY_PREFIX = "registration:"

    def __init__(
        self,
        config: AuthConfig,
        user_db: UserDatabase,
        identity: IdentityResolver,
        valkey: ValkeyClient,
        rate_limiter: RateLimiter,
        dispatcher: NotificationDispatcher,
        token_issuer: TokenIssuer,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._user_db = user_db
        self._identity = identity
        self._valkey = valkey
        self._rate_limiter = rate_limiter
        self._dispatcher = dispatcher
        self._token_issuer = token_issuer
        self._security_logger = security_logger

    def _key(self, email: str) -> str:
        return f"{self.KEY_PREFIX}{email}"

    def start_registration(
        self,
        first_name: str,
        last_name: str | None,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OtpDispatchResult:
        """Validate, park the pending registration and email its code.

        A second call for the same email replaces the first pending entry
        and its code.

        Raises:
            InputValidationError: missing name, bad email, weak password.
            AlreadyExistsError: email already registered.
            RateLimitedError: too many codes requested for this email.
        """
        first_name = require_name(first_name, "first_name")
        email = normalize_email(email)
        check_password_strength(password)

        if self._user_db.get_user_by_email(email) is not None:
            raise AlreadyExistsError("User already exists")

        self._rate_limiter.check_rate_limit(email)

        code = generate_code()
        pending = PendingRegistration(
            first_name=first_name,
            last_name=last_name.strip() if last_name else None,
            email=email,
            password_hash=hash_password(password),
            otp=code,
            created_at=now_utc(),
        )
        self._valkey.set_json(
            self._key(email),
            pending.model_dump(mode="json"),
            ttl_seconds=self._config.otp_ttl_seconds,
        )

        self._security_logger.log(
            SecurityEvent.REGISTRATION_STARTED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        sent = self._dispatcher.send_email_code(email, code, purpose="registration")
        self._security_logger.log(
            SecurityEvent.OTP_SENT if sent else SecurityEvent.OTP_DELIVERY_FAILED,
            email=email,
            ip_address=ip_address,
            details={"channel": "email", "purpose": "registration"},
        )
        return dispatch_result(sent, code, self._config)

    def complete_registration(
        self,
        email: str,
        submitted_code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Check the code, create the verified user, and log them in.

        Raises:
            CodeExpiredError: no pending registration, or older than the
                code lifetime even if the cache still holds it.
            CodeMismatchError: wrong code. The pending entry survives.
            RateLimitedError: too many wrong codes for this email. The
                guess that hits the limit also discards the pending entry.
            AlreadyExistsError: another registration for this email won.
        """
        email = normalize_email(email)
        key = self._key(email)

        try:
            self._rate_limiter.check_verification_allowed(email)
        except RateLimitedError:
            self._log_failure(email, ip_address, user_agent, "locked_out")
            raise

        data = self._valkey.get_json(key)
        if data is None:
            self._log_failure(email, ip_address, user_agent, "not_found")
            raise CodeExpiredError("Registration not found or expired")

        pending = PendingRegistration.model_validate(data)

        if not codes_match(pending.otp, submitted_code):
            self._log_failure(email, ip_address, user_agent, "mismatch")
            try:
                self._rate_limiter.record_failed_verification(email)
            except RateLimitedError:
                # The guessed code dies with its pending registration
                self._valkey.delete(key)
                self._security_logger.log(
                    SecurityEvent.RATE_LIMITED,
                    email=email,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    details={"purpose": "registration", "stage": "verify"},
                )
                raise
            raise CodeMismatchError("Invalid OTP")

        if seconds_since(pending.created_at, now_utc()) > self._config.otp_ttl_seconds:
            self._valkey.delete(key)
            self._log_failure(email, ip_address, user_agent, "expired")
            raise CodeExpiredError("Registration code expired")

        try:
            user = self._identity.promote_registration(pending)
        except AlreadyExistsError:
            self._valkey.delete(key)
            raise
        self._valkey.delete(key)

        self._rate_limiter.reset_rate_limit(email)

        self._security_logger.log(
            SecurityEvent.REGISTRATION_COMPLETED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        return AuthenticatedUser(
            user=user,
            token=self._token_issuer.issue_for_user(user),
            created=True,
        )

    def _log_failure(self, email, ip_address, user_agent, reason: str) -> None:
        self._security_logger.log(
            SecurityEvent.OTP_FAILED,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"purpose": "registration", "reason": reason},
        )
