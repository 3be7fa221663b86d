"""Security middleware for FastAPI - bearer token validation."""

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from auth.tokens import TokenIssuer
from auth.exceptions import InvalidTokenError
from api.base import error_response, ErrorCodes

logger = logging.getLogger(__name__)


def bearer_token(request: Request) -> str | None:
    """Token from an `Authorization: Bearer <token>` header, if any."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Middleware that validates bearer tokens on protected routes.

    For protected routes:
    1. Extracts the token from the Authorization header
    2. Verifies signature and expiry via TokenIssuer (no store lookup)
    3. Sets the verified claims on request.state.claims
    4. Requires role "admin" under ADMIN_PREFIX

    Public paths bypass authentication entirely. Missing and invalid
    tokens get the same 401 answer.
    """

    PUBLIC_PATHS = [
        "/register/",
        "/login",
        "/auth/",
        "/forgot-password",
        "/reset-password/",
        "/api/admin/login",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    ADMIN_PREFIX = "/api/admin/"

    def __init__(self, app, token_issuer: TokenIssuer):
        super().__init__(app)
        self._token_issuer = token_issuer

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path):
                return True
        return False

    def _reject(self, request: Request, status_code: int, code: str, message: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=error_response(
                code,
                message,
                request_id=getattr(request.state, "request_id", None),
            ).model_dump(mode="json"),
        )

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        path = request.url.path

        if self._is_public_path(path):
            return await call_next(request)

        token = bearer_token(request)
        if token is None:
            return self._reject(request, 401, ErrorCodes.NOT_AUTHENTICATED, "Invalid or expired token")

        try:
            claims = self._token_issuer.verify(token)
        except InvalidTokenError as e:
            logger.warning(f"Bearer token rejected on {path}: {e}")
            return self._reject(request, 401, ErrorCodes.INVALID_TOKEN, "Invalid or expired token")

        if path.startswith(self.ADMIN_PREFIX) and not claims.is_admin:
            return self._reject(request, 403, ErrorCodes.ADMIN_REQUIRED, "Admin access required")

        request.state.claims = claims
        return await call_next(request)
