"""Shared test fixtures for the LitVerse auth suite.

Valkey and PostgreSQL are replaced by in-memory fakes with the same
method surface as ValkeyClient and UserDatabase, so the suite runs without
infrastructure. The Valkey fake runs on a controllable clock, which is how
expiry is tested.
"""

import json
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock
from uuid import uuid4

import bcrypt
import pytest
from fastapi.testclient import TestClient

# Reset vault client singleton so no test sees secrets cached by another
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.admin_service import UserAdminService
from auth.config import AuthConfig
from auth.database import PROVIDER_COLUMNS, UPDATABLE_USER_FIELDS
from auth.dispatcher import NotificationDispatcher
from auth.exceptions import AlreadyExistsError
from auth.identity import IdentityResolver
from auth.otp import OtpEngine
from auth.passwords import hash_password
from auth.rate_limiter import RateLimiter
from auth.registration import RegistrationWorkflow
from auth.security_logger import SecurityLogger
from auth.service import AuthService
from auth.tokens import TokenIssuer
from auth.types import Admin, NewUser, User
from clients.email_client import EmailGatewayClient
from clients.identity_client import FacebookIdentityVerifier, GoogleIdentityVerifier
from clients.sms_client import SmsGatewayClient
from main import AppServices, create_app


# =============================================================================
# CONSTANTS
# =============================================================================

JWT_SECRET = "test-signing-key-0123456789abcdef0123456789"
STRONG_PASSWORD = "Aa1!aaaa"
EPOCH = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# FAKES
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = EPOCH):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class InMemoryValkey:
    """Dict-backed stand-in for ValkeyClient with TTL on a FakeClock."""

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._data: dict[str, tuple[str, datetime | None]] = {}

    def _live(self, key: str):
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock.now() >= expires_at:
            del self._data[key]
            return None
        return entry

    def keys(self) -> list[str]:
        return [key for key in list(self._data) if self._live(key) is not None]

    def ping(self) -> bool:
        return True

    def get(self, key):
        entry = self._live(key)
        return entry[0] if entry else None

    def set(self, key, value, ttl_seconds=None):
        expires_at = self._clock.now() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._data[key] = (str(value), expires_at)

    def delete(self, key) -> bool:
        if self._live(key) is None:
            return False
        del self._data[key]
        return True

    def ttl(self, key) -> int:
        entry = self._live(key)
        if entry is None:
            return -2
        if entry[1] is None:
            return -1
        return int((entry[1] - self._clock.now()).total_seconds())

    def incr(self, key) -> int:
        entry = self._live(key)
        count = int(entry[0]) + 1 if entry else 1
        self._data[key] = (str(count), entry[1] if entry else None)
        return count

    def expire(self, key, ttl_seconds) -> bool:
        entry = self._live(key)
        if entry is None:
            return False
        self._data[key] = (entry[0], self._clock.now() + timedelta(seconds=ttl_seconds))
        return True

    def set_json(self, key, value, ttl_seconds=None):
        self.set(key, json.dumps(value), ttl_seconds)

    def get_json(self, key):
        value = self.get(key)
        return None if value is None else json.loads(value)

    def close(self):
        pass


class InMemoryUserDatabase:
    """Stand-in for UserDatabase. Enforces unique email and phone like the schema."""

    def __init__(self):
        self._lock = threading.Lock()
        self.users: dict = {}
        self.admins: dict = {}

    def _now(self):
        return datetime.now(timezone.utc)

    def get_user_by_email(self, email):
        return next((u for u in self.users.values() if u.email.lower() == email.lower()), None)

    def get_user_by_phone(self, phone):
        return next((u for u in self.users.values() if u.phone == phone), None)

    def get_user_by_id(self, user_id):
        return self.users.get(user_id)

    def create_user(self, new_user: NewUser) -> User:
        with self._lock:
            if self.get_user_by_email(new_user.email) is not None:
                raise AlreadyExistsError("User already exists")
            if new_user.phone and self.get_user_by_phone(new_user.phone) is not None:
                raise AlreadyExistsError("User already exists")
            now = self._now()
            fields = new_user.model_dump()
            fields["email"] = fields["email"].lower()
            user = User(id=uuid4(), created_at=now, updated_at=now, **fields)
            self.users[user.id] = user
            return user

    def _replace(self, user_id, **changes):
        user = self.users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update={**changes, "updated_at": self._now()})
        self.users[user_id] = updated
        return updated

    def update_user(self, user_id, changes):
        unknown = set(changes) - set(UPDATABLE_USER_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        phone = changes.get("phone")
        if phone:
            owner = self.get_user_by_phone(phone)
            if owner is not None and owner.id != user_id:
                raise AlreadyExistsError("Phone number already in use")
        return self._replace(user_id, **changes)

    def attach_provider_id(self, user_id, provider, provider_id):
        return self._replace(user_id, **{PROVIDER_COLUMNS[provider]: provider_id})

    def mark_email_verified(self, user_id):
        user = self.users.get(user_id)
        if user is None:
            return None
        return self._replace(
            user_id,
            email_verified=True,
            email_verified_at=user.email_verified_at or self._now(),
        )

    def update_password(self, user_id, password_hash):
        return self._replace(user_id, password_hash=password_hash) is not None

    def delete_user(self, user_id):
        return self.users.pop(user_id, None) is not None

    def _matching(self, search):
        users = list(self.users.values())
        if search:
            needle = search.lower()
            users = [
                u for u in users
                if needle in u.first_name.lower()
                or needle in (u.last_name or "").lower()
                or needle in u.email.lower()
            ]
        return users

    def count_users(self, search=None):
        return len(self._matching(search))

    def list_users(self, search=None, limit=10, offset=0):
        newest_first = list(reversed(self._matching(search)))
        return newest_first[offset:offset + limit]

    def get_admin_by_email(self, email):
        return next((a for a in self.admins.values() if a.email == email.lower()), None)

    def create_admin(self, email, password_hash, first_name="Admin"):
        with self._lock:
            if self.get_admin_by_email(email) is not None:
                raise AlreadyExistsError("Admin already exists")
            admin = Admin(
                id=uuid4(),
                email=email.lower(),
                first_name=first_name,
                password_hash=password_hash,
                created_at=self._now(),
            )
            self.admins[admin.id] = admin
            return admin

    def count_admins(self):
        return len(self.admins)


# =============================================================================
# GLOBAL FIXTURES
# =============================================================================

_gensalt = bcrypt.gensalt


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    """Lowest bcrypt cost factor; hashing strength is not under test."""
    monkeypatch.setattr(bcrypt, "gensalt", lambda rounds=12, prefix=b"2b": _gensalt(4, prefix))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def valkey(clock):
    return InMemoryValkey(clock)


@pytest.fixture
def user_db():
    return InMemoryUserDatabase()


@pytest.fixture
def config():
    return AuthConfig(app_base_url="https://litverse.example.com")


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def email_client():
    """Mock email client - no actual emails sent in tests."""
    return Mock(spec=EmailGatewayClient)


@pytest.fixture
def sms_client():
    return Mock(spec=SmsGatewayClient)


@pytest.fixture
def google_verifier():
    return Mock(spec=GoogleIdentityVerifier)


@pytest.fixture
def facebook_verifier():
    return Mock(spec=FacebookIdentityVerifier)


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def dispatcher(email_client, sms_client, config):
    return NotificationDispatcher(
        email_client,
        sms_client,
        app_name=config.app_name,
        code_lifetime_minutes=config.otp_expiry_minutes,
    )


@pytest.fixture
def token_issuer(config):
    return TokenIssuer(JWT_SECRET, config)


@pytest.fixture
def rate_limiter(valkey, config):
    return RateLimiter(valkey, config)


@pytest.fixture
def otp_engine(valkey, config):
    return OtpEngine(valkey, config)


@pytest.fixture
def identity(user_db, config):
    return IdentityResolver(user_db, config)


@pytest.fixture
def registration(config, user_db, identity, valkey, rate_limiter, dispatcher, token_issuer, security_logger):
    return RegistrationWorkflow(
        config=config,
        user_db=user_db,
        identity=identity,
        valkey=valkey,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        token_issuer=token_issuer,
        security_logger=security_logger,
    )


@pytest.fixture
def auth_service(
    config, user_db, identity, otp_engine, rate_limiter, dispatcher,
    token_issuer, security_logger, valkey, google_verifier, facebook_verifier,
):
    return AuthService(
        config=config,
        user_db=user_db,
        identity=identity,
        otp_engine=otp_engine,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        token_issuer=token_issuer,
        security_logger=security_logger,
        valkey=valkey,
        identity_verifiers={"google": google_verifier, "facebook": facebook_verifier},
    )


@pytest.fixture
def user_admin(user_db, security_logger):
    return UserAdminService(user_db, security_logger)


@pytest.fixture
def make_user(user_db):
    """Insert a user directly into the fake store."""

    def _make(email="ann@litverse-test.com", password=STRONG_PASSWORD, **fields):
        fields.setdefault("first_name", "Ann")
        return user_db.create_user(NewUser(
            email=email,
            password_hash=hash_password(password),
            **fields,
        ))

    return _make


@pytest.fixture
def make_admin(user_db):
    def _make(email="admin@litverse-test.com", password=STRONG_PASSWORD):
        return user_db.create_admin(email, hash_password(password))

    return _make


# =============================================================================
# HTTP FIXTURES
# =============================================================================


@pytest.fixture
def app_services(config, auth_service, registration, user_admin, token_issuer):
    return AppServices(
        config=config,
        auth_service=auth_service,
        registration=registration,
        user_admin=user_admin,
        token_issuer=token_issuer,
    )


@pytest.fixture
def client(app_services):
    """TestClient around the full app, wired to the in-memory fakes."""
    return TestClient(create_app(app_services))


@pytest.fixture
def user_headers(make_user, token_issuer):
    user = make_user(email="reader@litverse-test.com", first_name="Rea", last_name="Der")
    token = token_issuer.issue_for_user(user).token
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers(make_admin, token_issuer):
    token = token_issuer.issue_for_admin(make_admin()).token
    return {"Authorization": f"Bearer {token}"}
