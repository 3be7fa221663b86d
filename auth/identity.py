"""Identity unification: every successful authentication lands on one User.

Lookup key per path:
    password, federated, email OTP  -> email
    mobile OTP                      -> phone

A hit is a login and only verification flags may change. A miss creates
the account on the spot for federated and OTP-only paths, with a random
password hash. Password registration never reaches a miss here without a
verified code (see auth.registration).
"""

import logging

from auth.config import AuthConfig
from auth.database import PROVIDER_COLUMNS, UserDatabase
from auth.exceptions import AlreadyExistsError, InvalidCredentialsError, UserInactiveError
from auth.passwords import DUMMY_HASH, random_password_hash, verify_password
from auth.types import NewUser, PendingRegistration, User
from clients.identity_client import VerifiedIdentity
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _require_active(user: User) -> User:
    if not user.is_active:
        raise UserInactiveError("User account is deactivated")
    return user


class IdentityResolver:
    """Resolve authentication events to canonical user records."""

    def __init__(self, user_db: UserDatabase, config: AuthConfig):
        self._user_db = user_db
        self._config = config

    def placeholder_email(self, phone: str) -> str:
        """Synthesized unique address for a phone-only account."""
        return f"{phone.lstrip('+')}@{self._config.phone_email_domain}"

    def authenticate_password(self, email: str, password: str) -> User:
        """Check an email/password pair.

        bcrypt always runs, against a dummy hash when the email is unknown.

        Raises:
            InvalidCredentialsError: unknown email or wrong password.
            UserInactiveError: correct password, deactivated account.
        """
        user = self._user_db.get_user_by_email(email)
        if user is None:
            verify_password(password, DUMMY_HASH)
            raise InvalidCredentialsError("Invalid credentials")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")
        return _require_active(user)

    def promote_registration(self, pending: PendingRegistration) -> User:
        """Persist a verified pending registration.

        Raises:
            AlreadyExistsError: the email was taken since phase one.
        """
        now = now_utc()
        user = self._user_db.create_user(NewUser(
            first_name=pending.first_name,
            last_name=pending.last_name,
            email=pending.email,
            password_hash=pending.password_hash,
            email_verified=True,
            email_verified_at=now,
        ))
        logger.info(f"User {user.id} created from verified registration")
        return user

    def resolve_federated(self, identity: VerifiedIdentity) -> tuple[User, bool]:
        """Find by email or create a federated account. Returns (user, created).

        With link_federated_identities on, a provider id is attached to an
        existing account that has none for that provider. With it off the
        existing record is left as is.
        """
        existing = self._user_db.get_user_by_email(identity.email)
        if existing is not None:
            return self._login_federated(existing, identity), False

        column = PROVIDER_COLUMNS[identity.provider]
        new_user = NewUser(
            first_name=identity.given_name or identity.email.split("@")[0],
            last_name=identity.family_name,
            email=identity.email,
            password_hash=random_password_hash(),
            email_verified=True,
            email_verified_at=now_utc(),
            **{column: identity.provider_id},
        )
        try:
            return self._user_db.create_user(new_user), True
        except AlreadyExistsError:
            # Lost a race with another first sign-in for this email
            existing = self._user_db.get_user_by_email(identity.email)
            if existing is None:
                raise
            return self._login_federated(existing, identity), False

    def _login_federated(self, user: User, identity: VerifiedIdentity) -> User:
        _require_active(user)
        column = PROVIDER_COLUMNS[identity.provider]
        current = getattr(user, column)

        if current is None and self._config.link_federated_identities:
            user = self._user_db.attach_provider_id(user.id, identity.provider, identity.provider_id) or user
            logger.info(f"Linked {identity.provider} identity to user {user.id}")
        elif current is not None and current != identity.provider_id:
            logger.warning(f"User {user.id} signed in with a different {identity.provider} id")

        if not user.email_verified:
            user = self._user_db.mark_email_verified(user.id) or user
        return user

    def resolve_email(self, email: str) -> tuple[User, bool]:
        """Email-OTP path: code already verified. Returns (user, created)."""
        existing = self._user_db.get_user_by_email(email)
        if existing is not None:
            _require_active(existing)
            if not existing.email_verified:
                existing = self._user_db.mark_email_verified(existing.id) or existing
            return existing, False

        new_user = NewUser(
            first_name=email.split("@")[0],
            email=email,
            password_hash=random_password_hash(),
            email_verified=True,
            email_verified_at=now_utc(),
        )
        try:
            return self._user_db.create_user(new_user), True
        except AlreadyExistsError:
            existing = self._user_db.get_user_by_email(email)
            if existing is None:
                raise
            return _require_active(existing), False

    def resolve_phone(self, phone: str) -> tuple[User, bool]:
        """Mobile-OTP path: code already verified. Returns (user, created)."""
        existing = self._user_db.get_user_by_phone(phone)
        if existing is not None:
            return _require_active(existing), False

        new_user = NewUser(
            first_name="User",
            email=self.placeholder_email(phone),
            phone=phone,
            password_hash=random_password_hash(),
        )
        try:
            return self._user_db.create_user(new_user), True
        except AlreadyExistsError:
            # Lost an insert race, or the placeholder address is already taken
            existing = (
                self._user_db.get_user_by_phone(phone)
                or self._user_db.get_user_by_email(new_user.email)
            )
            if existing is None:
                raise
            return _require_active(existing), False
