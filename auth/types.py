"""Pydantic models for auth domain."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


class User(BaseModel):
    """Canonical identity every authentication path resolves to."""

    id: UUID
    first_name: str
    last_name: str | None = None
    # Plain str: phone-only accounts carry a synthesized placeholder address
    email: str
    phone: str | None = None
    password_hash: str = Field(..., exclude=True, repr=False)
    google_id: str | None = None
    facebook_id: str | None = None
    is_active: bool = True
    email_verified: bool = False
    email_verified_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class NewUser(BaseModel):
    """Insert payload for the credential store."""

    first_name: str
    last_name: str | None = None
    email: str
    phone: str | None = None
    password_hash: str = Field(..., repr=False)
    google_id: str | None = None
    facebook_id: str | None = None
    email_verified: bool = False
    email_verified_at: datetime | None = None


class Admin(BaseModel):
    """Administrator account. Separate identity space from User."""

    id: UUID
    email: str
    first_name: str
    password_hash: str = Field(..., exclude=True, repr=False)
    role: Literal["admin"] = "admin"
    created_at: datetime


class PendingRegistration(BaseModel):
    """A registration awaiting its emailed code. Lives only in the cache."""

    first_name: str
    last_name: str | None = None
    email: str
    password_hash: str = Field(..., repr=False)
    otp: str = Field(..., repr=False)
    created_at: datetime


class TokenClaims(BaseModel):
    """Verified contents of a bearer token."""

    subject: str
    email: str | None = None
    role: str | None = None
    name: str | None = None
    issued_at: datetime
    expires_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class IssuedToken(BaseModel):
    """A freshly signed bearer token."""

    token: str = Field(..., repr=False)
    token_type: str = "Bearer"
    expires_at: datetime
    expires_in: int = Field(..., description="Seconds until expiry")


class AuthenticatedUser(BaseModel):
    """User info returned after successful authentication."""

    user: User
    token: IssuedToken
    created: bool = False


class AuthenticatedAdmin(BaseModel):
    """Admin info returned after successful admin login."""

    admin: Admin
    token: IssuedToken


# =============================================================================
# REQUEST BODIES
# =============================================================================


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class RegistrationRequest(_Body):
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: str | None = Field(default=None, max_length=100, alias="lastName")
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class OtpVerifyEmailRequest(_Body):
    email: EmailStr
    otp: str = Field(..., min_length=1, max_length=12)


class LoginRequest(_Body):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class EmailOtpRequest(_Body):
    email: EmailStr


class MobileOtpRequest(_Body):
    phone: str = Field(
        ...,
        min_length=1,
        max_length=32,
        validation_alias=AliasChoices("phoneNumber", "phone"),
    )


class MobileOtpVerifyRequest(MobileOtpRequest):
    otp: str = Field(..., min_length=1, max_length=12)


class FederatedLoginRequest(_Body):
    token: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("token", "credential", "accessToken"),
    )


class ForgotPasswordRequest(_Body):
    email: EmailStr


class ResetPasswordRequest(_Body):
    new_password: str = Field(..., min_length=1, max_length=128, alias="newPassword")


class UserUpdateRequest(_Body):
    first_name: str | None = Field(default=None, min_length=1, max_length=100, alias="firstName")
    last_name: str | None = Field(default=None, max_length=100, alias="lastName")
    phone: str | None = Field(default=None, max_length=32)
    is_active: bool | None = Field(default=None, alias="isActive")
    password: str | None = Field(default=None, min_length=1, max_length=128)
