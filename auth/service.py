"""Authentication service - orchestrates every login path.

Password, email OTP, mobile OTP, Google and Facebook all converge on
IdentityResolver for the user record and on TokenIssuer for the bearer
token. Registration lives in auth.registration; this service covers the
rest plus admin login and password reset.
"""

import logging
import secrets
from uuid import UUID

from auth.config import AuthConfig
from auth.database import UserDatabase
from auth.dispatcher import NotificationDispatcher
from auth.exceptions import (
    AlreadyExistsError,
    AuthError,
    CodeMismatchError,
    InvalidCredentialsError,
    InvalidTokenError,
    RateLimitedError,
    UserNotFoundError,
)
from auth.identity import IdentityResolver
from auth.otp import OtpDispatchResult, OtpEngine, dispatch_result
from auth.passwords import DUMMY_HASH, hash_password, verify_password
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.tokens import TokenIssuer
from auth.types import AuthenticatedAdmin, AuthenticatedUser, TokenClaims, User
from auth.validation import check_password_strength, normalize_email, normalize_phone
from clients.identity_client import IdentityVerificationError
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)

EMAIL_CHANNEL = "email"
PHONE_CHANNEL = "phone"


class AuthService:
    """Orchestrates authentication flows.

    Handles:
    - Password login (users and admins)
    - Email and mobile OTP login with account creation on first contact
    - Google / Facebook sign-in
    - Password reset
    - Bearer token validation
    """

    RESET_KEY_PREFIX = "password_reset:"

    def __init__(
        self,
        config: AuthConfig,
        user_db: UserDatabase,
        identity: IdentityResolver,
        otp_engine: OtpEngine,
        rate_limiter: RateLimiter,
        dispatcher: NotificationDispatcher,
        token_issuer: TokenIssuer,
        security_logger: SecurityLogger,
        valkey: ValkeyClient,
        identity_verifiers: dict | None = None,
    ):
        self._config = config
        self._user_db = user_db
        self._identity = identity
        self._otp = otp_engine
        self._rate_limiter = rate_limiter
        self._dispatcher = dispatcher
        self._token_issuer = token_issuer
        self._security_logger = security_logger
        self._valkey = valkey
        # provider name -> object with verify_id_token(token) -> VerifiedIdentity
        self._verifiers = identity_verifiers or {}

    @property
    def federated_providers(self) -> list[str]:
        return sorted(self._verifiers)

    # =========================================================================
    # PASSWORD LOGIN
    # =========================================================================

    def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """
        Raises:
            InvalidCredentialsError: unknown email or wrong password.
            UserInactiveError: account deactivated.
        """
        email = normalize_email(email)
        try:
            user = self._identity.authenticate_password(email, password)
        except AuthError as e:
            self._security_logger.log(
                SecurityEvent.LOGIN_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"method": "password", "reason": type(e).__name__},
            )
            raise

        return self._login_succeeded(user, "password", ip_address, user_agent)

    # =========================================================================
    # OTP LOGIN
    # =========================================================================

    def request_email_otp(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OtpDispatchResult:
        """Issue and email a sign-in code. Works for unknown emails too.

        Raises:
            InputValidationError: malformed email.
            RateLimitedError: too many codes for this email.
        """
        email = normalize_email(email)
        return self._request_code(EMAIL_CHANNEL, email, ip_address, user_agent)

    def verify_email_otp(
        self,
        email: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """
        Raises:
            CodeExpiredError, CodeMismatchError: code rejected.
            RateLimitedError: too many wrong codes; the live code is revoked.
            UserInactiveError: account deactivated.
        """
        email = normalize_email(email)
        self._verify_code(EMAIL_CHANNEL, email, code, ip_address, user_agent)
        user, created = self._identity.resolve_email(email)
        return self._login_succeeded(user, "email_otp", ip_address, user_agent, created)

    def request_mobile_otp(
        self,
        phone: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OtpDispatchResult:
        phone = normalize_phone(phone)
        return self._request_code(PHONE_CHANNEL, phone, ip_address, user_agent)

    def verify_mobile_otp(
        self,
        phone: str,
        code: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        phone = normalize_phone(phone)
        self._verify_code(PHONE_CHANNEL, phone, code, ip_address, user_agent)
        user, created = self._identity.resolve_phone(phone)
        return self._login_succeeded(user, "mobile_otp", ip_address, user_agent, created)

    def _request_code(self, channel, destination, ip_address, user_agent) -> OtpDispatchResult:
        try:
            self._rate_limiter.check_rate_limit(destination)
        except RateLimitedError:
            self._security_logger.log(
                SecurityEvent.RATE_LIMITED,
                email=destination if channel == EMAIL_CHANNEL else None,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"channel": channel},
            )
            raise

        code = self._otp.issue(channel, destination)
        self._security_logger.log(
            SecurityEvent.OTP_REQUESTED,
            email=destination if channel == EMAIL_CHANNEL else None,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"channel": channel},
        )

        if channel == EMAIL_CHANNEL:
            sent = self._dispatcher.send_email_code(destination, code, purpose="login")
        else:
            sent = self._dispatcher.send_sms_code(destination, code)

        self._security_logger.log(
            SecurityEvent.OTP_SENT if sent else SecurityEvent.OTP_DELIVERY_FAILED,
            email=destination if channel == EMAIL_CHANNEL else None,
            ip_address=ip_address,
            details={"channel": channel},
        )
        return dispatch_result(sent, code, self._config)

    def _verify_code(self, channel, destination, code, ip_address, user_agent) -> None:
        email = destination if channel == EMAIL_CHANNEL else None
        try:
            self._rate_limiter.check_verification_allowed(destination)
            self._otp.verify(channel, destination, code)
        except AuthError as e:
            self._security_logger.log(
                SecurityEvent.OTP_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"channel": channel, "reason": type(e).__name__},
            )
            if isinstance(e, CodeMismatchError):
                self._count_wrong_code(channel, destination, ip_address, user_agent)
            raise

        self._rate_limiter.reset_rate_limit(destination)
        self._security_logger.log(
            SecurityEvent.OTP_VERIFIED,
            email=email,
            ip_address=ip_address,
            details={"channel": channel},
        )

    def _count_wrong_code(self, channel, destination, ip_address, user_agent) -> None:
        """Revoke the live code once too many wrong guesses arrived for it."""
        try:
            self._rate_limiter.record_failed_verification(destination)
        except RateLimitedError:
            self._otp.invalidate(channel, destination)
            self._security_logger.log(
                SecurityEvent.RATE_LIMITED,
                email=destination if channel == EMAIL_CHANNEL else None,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"channel": channel, "stage": "verify"},
            )
            raise

    # =========================================================================
    # FEDERATED LOGIN
    # =========================================================================

    def federated_login(
        self,
        provider: str,
        provider_token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """
        Raises:
            InvalidTokenError: provider not configured or token rejected.
            UserInactiveError: account deactivated.
        """
        verifier = self._verifiers.get(provider)
        if verifier is None:
            raise InvalidTokenError(f"{provider} sign-in is not configured")

        try:
            identity = verifier.verify_id_token(provider_token)
        except IdentityVerificationError as e:
            self._security_logger.log(
                SecurityEvent.FEDERATED_LOGIN_FAILED,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"provider": provider, "reason": str(e)},
            )
            raise InvalidTokenError("Invalid or expired token")

        user, created = self._identity.resolve_federated(identity)
        self._security_logger.log(
            SecurityEvent.FEDERATED_LOGIN,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"provider": provider},
        )
        return self._login_succeeded(user, provider, ip_address, user_agent, created)

    # =========================================================================
    # ADMINS
    # =========================================================================

    def ensure_bootstrap_admin(self, email: str, password: str) -> bool:
        """Create the first admin if no admin exists. Idempotent.

        Returns True if an admin was created.
        """
        if self._user_db.count_admins() > 0:
            return False
        email = normalize_email(email)
        try:
            admin = self._user_db.create_admin(email, hash_password(password))
        except AlreadyExistsError:
            # Another process bootstrapped first
            return False
        self._security_logger.log(
            SecurityEvent.ADMIN_BOOTSTRAPPED,
            email=admin.email,
            user_id=admin.id,
        )
        logger.info(f"Bootstrap admin created: {admin.email}")
        return True

    def admin_login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedAdmin:
        """
        Raises:
            InvalidCredentialsError: unknown admin or wrong password.
        """
        email = normalize_email(email)
        admin = self._user_db.get_admin_by_email(email)
        valid = verify_password(password, admin.password_hash if admin else DUMMY_HASH)

        if admin is None or not valid:
            self._security_logger.log(
                SecurityEvent.ADMIN_LOGIN_FAILED,
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            raise InvalidCredentialsError("Invalid admin credentials")

        self._security_logger.log(
            SecurityEvent.ADMIN_LOGIN_SUCCEEDED,
            email=admin.email,
            user_id=admin.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return AuthenticatedAdmin(admin=admin, token=self._token_issuer.issue_for_admin(admin))

    # =========================================================================
    # PASSWORD RESET
    # =========================================================================

    def _reset_key(self, token: str) -> str:
        return f"{self.RESET_KEY_PREFIX}{token}"

    def request_password_reset(
        self,
        email: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Email a reset link if the email is registered.

        Returns normally either way so the response doesn't reveal which
        emails have accounts.
        """
        email = normalize_email(email)
        self._rate_limiter.check_rate_limit(email)

        user = self._user_db.get_user_by_email(email)
        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_REQUESTED,
            email=email,
            user_id=user.id if user else None,
            ip_address=ip_address,
            user_agent=user_agent,
            details=None if user else {"reason": "user_not_found"},
        )
        if user is None:
            return

        token = secrets.token_urlsafe(32)
        lifetime = self._config.password_reset_expiry_minutes
        self._valkey.set(self._reset_key(token), str(user.id), ttl_seconds=lifetime * 60)

        link = f"{self._config.app_base_url.rstrip('/')}/reset-password/{token}"
        if not self._dispatcher.send_password_reset(user.email, link, lifetime):
            logger.warning(f"Password reset email for user {user.id} not delivered")

    def reset_password(
        self,
        token: str,
        new_password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """Consume a reset token and set a new password.

        Raises:
            InputValidationError: new password fails the policy.
            InvalidTokenError: token unknown, used or expired.
        """
        check_password_strength(new_password)

        key = self._reset_key(token)
        user_id = self._valkey.get(key)
        if user_id is None:
            raise InvalidTokenError("Invalid or expired reset token")

        if not self._valkey.delete(key):
            raise InvalidTokenError("Invalid or expired reset token")
        if not self._user_db.update_password(UUID(user_id), hash_password(new_password)):
            raise InvalidTokenError("Invalid or expired reset token")

        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_COMPLETED,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    # =========================================================================
    # TOKENS
    # =========================================================================

    def validate_token(self, token: str) -> TokenClaims:
        """
        Raises:
            InvalidTokenError: malformed, badly signed or expired.
        """
        return self._token_issuer.verify(token)

    def get_user(self, user_id: str) -> User:
        """
        Raises:
            UserNotFoundError: no such user (deleted after token issue).
        """
        try:
            user = self._user_db.get_user_by_id(UUID(user_id))
        except ValueError:
            user = None
        if user is None:
            raise UserNotFoundError("User not found")
        return user

    def _login_succeeded(
        self,
        user: User,
        method: str,
        ip_address: str | None,
        user_agent: str | None,
        created: bool = False,
    ) -> AuthenticatedUser:
        if created:
            self._security_logger.log(
                SecurityEvent.USER_CREATED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                details={"method": method},
            )
        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"method": method},
        )
        return AuthenticatedUser(
            user=user,
            token=self._token_issuer.issue_for_user(user),
            created=created,
        )
