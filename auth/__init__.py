"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    AlreadyExistsError,
    CodeExpiredError,
    CodeMismatchError,
    InputValidationError,
    InvalidCredentialsError,
    InvalidTokenError,
    PermissionDeniedError,
    RateLimitedError,
    UserNotFoundError,
    UserInactiveError,
)
from auth.types import (
    User,
    Admin,
    PendingRegistration,
    TokenClaims,
    IssuedToken,
    AuthenticatedUser,
    AuthenticatedAdmin,
)
from auth.config import AuthConfig, load_auth_config
from auth.database import UserDatabase
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.tokens import TokenIssuer
from auth.otp import OtpEngine, OtpDispatchResult
from auth.dispatcher import NotificationDispatcher
from auth.identity import IdentityResolver
from auth.registration import RegistrationWorkflow
from auth.service import AuthService
from auth.admin_service import UserAdminService
from auth.security_middleware import BearerAuthMiddleware
from auth.api import create_auth_router
from auth.admin_api import create_admin_router
