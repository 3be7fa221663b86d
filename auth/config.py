"""Authentication configuration."""

import os

from pydantic import BaseModel, Field

ENV_PREFIX = "LITVERSE_"


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    hours for longer ones) to make configuration intuitive.
    """

    # One-time codes
    otp_expiry_minutes: int = Field(
        default=10,
        description="How long OTP codes and pending registrations remain valid",
        ge=1,
        le=60,
    )
    insecure_otp_disclosure: bool = Field(
        default=False,
        description="Return the OTP in the response body when delivery fails. Never enable in production.",
    )

    # Session tokens
    session_expiry_hours: int = Field(
        default=2,
        description="Bearer token lifetime in hours",
        ge=1,
        le=24,
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="Signing algorithm for bearer tokens",
    )

    # Password reset
    password_reset_expiry_minutes: int = Field(
        default=60,
        description="How long password reset links remain valid",
        ge=5,
        le=1440,
    )

    # Rate limiting
    rate_limit_attempts: int = Field(
        default=5,
        description="Max OTP requests per destination per window",
        ge=1,
        le=20,
    )
    rate_limit_window_minutes: int = Field(
        default=15,
        description="Rate limit window duration",
        ge=5,
        le=60,
    )
    otp_verify_attempts: int = Field(
        default=5,
        description="Wrong codes per destination per window before the live code is revoked",
        ge=1,
        le=20,
    )

    # Identity unification
    link_federated_identities: bool = Field(
        default=False,
        description="Attach a provider id to an existing account matched by email",
    )
    phone_email_domain: str = Field(
        default="mobile.litverse.app",
        description="Domain for placeholder emails of phone-only accounts",
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Frontend base URL for password reset links",
    )
    app_name: str = Field(
        default="LitVerse",
        description="Application name for emails and text messages",
    )

    @property
    def otp_ttl_seconds(self) -> int:
        return self.otp_expiry_minutes * 60

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_expiry_hours * 3600


def load_auth_config(environ: dict[str, str] | None = None) -> AuthConfig:
    """Build AuthConfig from LITVERSE_<FIELD> environment variables.

    Unset variables keep their defaults. Values are coerced and bounds
    checked by pydantic, so a bad value fails startup.
    """
    environ = os.environ if environ is None else environ
    overrides = {
        name: environ[f"{ENV_PREFIX}{name.upper()}"]
        for name in AuthConfig.model_fields
        if f"{ENV_PREFIX}{name.upper()}" in environ
    }
    return AuthConfig.model_validate(overrides)
