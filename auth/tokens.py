"""Signed bearer tokens (JWT via python-jose).

Tokens are stateless: nothing is stored server-side and there is no
revocation list. The fixed expiry is the only way a token stops working.
"""

import logging
from datetime import timedelta

from jose import JWTError, jwt

from auth.config import AuthConfig
from auth.exceptions import InvalidTokenError
from auth.types import Admin, IssuedToken, TokenClaims, User
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Mint and verify bearer tokens for users and admins."""

    def __init__(self, secret_key: str, config: AuthConfig):
        if not secret_key or len(secret_key) < 32:
            raise ValueError("secret_key must be at least 32 characters")
        self._secret_key = secret_key
        self._config = config

    def issue(
        self,
        subject_id: str,
        email: str | None = None,
        role: str | None = None,
        name: str | None = None,
    ) -> IssuedToken:
        """Sign a token valid for session_expiry_hours from now.

        `role` is only embedded when given; its absence means a regular user.
        """
        issued_at = now_utc()
        expires_at = issued_at + timedelta(hours=self._config.session_expiry_hours)

        payload = {
            "sub": str(subject_id),
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        if email:
            payload["email"] = email
        if role:
            payload["role"] = role
        if name:
            payload["name"] = name

        token = jwt.encode(payload, self._secret_key, algorithm=self._config.jwt_algorithm)
        return IssuedToken(
            token=token,
            expires_at=expires_at,
            expires_in=self._config.session_ttl_seconds,
        )

    def verify(self, token: str) -> TokenClaims:
        """Decode and check signature and expiry.

        Raises:
            InvalidTokenError: malformed, badly signed or expired. The
                message is the same in every case.
        """
        if not token:
            raise InvalidTokenError("Invalid or expired token")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._config.jwt_algorithm],
                options={"require_exp": True, "require_sub": True},
            )
        except JWTError as e:
            logger.debug(f"Token rejected: {e}")
            raise InvalidTokenError("Invalid or expired token")

        try:
            return TokenClaims(
                subject=payload["sub"],
                email=payload.get("email"),
                role=payload.get("role"),
                name=payload.get("name"),
                issued_at=payload["iat"],
                expires_at=payload["exp"],
            )
        except (KeyError, ValueError):
            raise InvalidTokenError("Invalid or expired token")

    def issue_for_user(self, user: User) -> IssuedToken:
        return self.issue(str(user.id), email=user.email, name=user.display_name)

    def issue_for_admin(self, admin: Admin) -> IssuedToken:
        return self.issue(str(admin.id), email=admin.email, role=admin.role, name=admin.first_name)
