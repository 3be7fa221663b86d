"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InputValidationError(AuthError):
    """Malformed or missing input. User-correctable."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class AlreadyExistsError(AuthError):
    """An account with this email (or phone) is already registered."""


class CodeExpiredError(AuthError):
    """
    No live code or pending registration for this destination.

    Covers never-issued, already-used and timed-out codes alike; the cache
    evicts expired entries so these cases cannot be told apart.
    """


class CodeMismatchError(AuthError):
    """A live code exists but the submitted one differs."""


class InvalidCredentialsError(AuthError):
    """
    Email/password pair rejected.

    Note: Never reveal whether the email or the password was wrong.
    """


class InvalidTokenError(AuthError):
    """
    Token is invalid, expired, or already used.

    Used for bearer tokens, federated provider tokens and password reset
    tokens. Callers respond "invalid or expired" without distinguishing.
    """


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class UserNotFoundError(AuthError):
    """
    No user with this id.

    Note: Login paths never raise this; they raise InvalidCredentialsError
    so responses don't reveal whether an email exists.
    """


class UserInactiveError(AuthError):
    """User account is deactivated. Login not permitted."""


class PermissionDeniedError(AuthError):
    """Authenticated, but this kind of account may not use the endpoint."""
