"""Input normalization and the password strength policy.

Runs inside the services, before any cache or store access, so a rejected
request never leaves a pending registration or an issued code behind.
"""

import re

from email_validator import EmailNotValidError, validate_email

from auth.exceptions import InputValidationError

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_BYTES = 72  # bcrypt ignores anything past this
PASSWORD_SYMBOLS = "@$!%*?&#^_-+=.,:;~"

_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{7,14}$")


def normalize_email(email: str | None) -> str:
    """Syntax-check and lowercase an email address.

    Deliverability (DNS) is not checked: the emailed code proves it.
    """
    if not email or not email.strip():
        raise InputValidationError("email", "Email is required")
    try:
        result = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise InputValidationError("email", str(e))
    return result.normalized.lower()


def normalize_phone(phone: str | None) -> str:
    """Strip separators and check an E.164-style number.

    Always returns the +-prefixed form, so "1555..." and "+1555..." are one key.
    """
    if not phone or not phone.strip():
        raise InputValidationError("phone", "Phone number is required")
    compact = _PHONE_SEPARATORS.sub("", phone.strip())
    if not _PHONE_PATTERN.match(compact):
        raise InputValidationError("phone", "Phone number is not valid")
    return "+" + compact.lstrip("+")


def check_password_strength(password: str | None) -> None:
    """Enforce the password policy.

    At least 8 characters with one lowercase letter, one uppercase letter,
    one digit and one symbol from PASSWORD_SYMBOLS.
    """
    if not password:
        raise InputValidationError("password", "Password is required")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise InputValidationError(
            "password", f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
        )
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise InputValidationError(
            "password", f"Password must be at most {PASSWORD_MAX_BYTES} bytes"
        )
    if not any(c.islower() for c in password):
        raise InputValidationError("password", "Password must contain a lowercase letter")
    if not any(c.isupper() for c in password):
        raise InputValidationError("password", "Password must contain an uppercase letter")
    if not any(c.isdigit() for c in password):
        raise InputValidationError("password", "Password must contain a digit")
    if not any(c in PASSWORD_SYMBOLS for c in password):
        raise InputValidationError(
            "password", f"Password must contain one of {PASSWORD_SYMBOLS}"
        )


def require_name(value: str | None, field: str = "first_name") -> str:
    if not value or not value.strip():
        raise InputValidationError(field, "This field is required")
    return value.strip()
