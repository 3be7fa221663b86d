"""Password hashing with bcrypt.

bcrypt is used directly rather than through passlib, whose startup
self-check trips bcrypt 4.x's 72-byte limit.
"""

import secrets

import bcrypt


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def random_password_hash() -> str:
    """Hash of a random secret nobody knows.

    Federated and OTP-only accounts get one so password_hash is never empty
    while password login stays impossible for them.
    """
    return hash_password(secrets.token_urlsafe(32))


# Login runs bcrypt against this when the email is unknown, so response
# time doesn't reveal which emails are registered.
DUMMY_HASH: str = hash_password("litverse_timing_dummy")
