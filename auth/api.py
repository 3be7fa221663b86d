"""HTTP routes for authentication.

Handlers are plain functions: the services below them block on bcrypt,
psycopg2, redis and outbound HTTP, so FastAPI runs each request in its
threadpool instead of on the event loop.
"""

import ipaddress

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.base import success_response
from auth.exceptions import PermissionDeniedError
from auth.otp import OtpDispatchResult
from auth.registration import RegistrationWorkflow
from auth.service import AuthService
from auth.types import (
    AuthenticatedUser,
    EmailOtpRequest,
    FederatedLoginRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MobileOtpRequest,
    MobileOtpVerifyRequest,
    OtpVerifyEmailRequest,
    RegistrationRequest,
    ResetPasswordRequest,
)


def client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def client_meta(request: Request) -> dict:
    return {
        "ip_address": client_ip(request),
        "user_agent": request.headers.get("User-Agent"),
    }


def respond(request: Request, data: dict, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=success_response(
            data, request_id=getattr(request.state, "request_id", None)
        ).model_dump(mode="json"),
    )


def otp_payload(message: str, result: OtpDispatchResult) -> dict:
    payload = {
        "message": message if result.sent else "Code could not be delivered",
        "sent": result.sent,
        "expires_in": result.expires_in_seconds,
    }
    if result.otp is not None:
        payload["otp"] = result.otp
    return payload


def session_payload(message: str, result: AuthenticatedUser) -> dict:
    return {
        "message": message,
        "token": result.token.token,
        "token_type": result.token.token_type,
        "expires_in": result.token.expires_in,
        "user": result.user.model_dump(mode="json"),
        "created": result.created,
        "redirect_to": "/home",
    }


def create_auth_router(auth_service: AuthService, registration: RegistrationWorkflow) -> APIRouter:
    """Create auth router with injected services."""
    router = APIRouter(tags=["auth"])

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    @router.post("/register/send-otp")
    def start_registration(request: Request, body: RegistrationRequest):
        """Park the registration and email a verification code."""
        result = registration.start_registration(
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
            password=body.password,
            **client_meta(request),
        )
        return respond(request, otp_payload("OTP sent to your email", result))

    @router.post("/register/verify-otp")
    def complete_registration(request: Request, body: OtpVerifyEmailRequest):
        """Verify the code, create the account and log in."""
        result = registration.complete_registration(
            email=body.email,
            submitted_code=body.otp,
            **client_meta(request),
        )
        return respond(request, session_payload("Registration successful", result), 201)

    # =========================================================================
    # LOGIN
    # =========================================================================

    @router.post("/login")
    def login(request: Request, body: LoginRequest):
        result = auth_service.login(body.email, body.password, **client_meta(request))
        return respond(request, session_payload("Login successful", result))

    @router.post("/auth/email/send-otp")
    def send_email_otp(request: Request, body: EmailOtpRequest):
        result = auth_service.request_email_otp(body.email, **client_meta(request))
        return respond(request, otp_payload("OTP sent to your email", result))

    @router.post("/auth/email/verify-otp")
    def verify_email_otp(request: Request, body: OtpVerifyEmailRequest):
        result = auth_service.verify_email_otp(body.email, body.otp, **client_meta(request))
        return respond(request, session_payload("Login successful", result))

    @router.post("/auth/mobile/send-otp")
    def send_mobile_otp(request: Request, body: MobileOtpRequest):
        result = auth_service.request_mobile_otp(body.phone, **client_meta(request))
        return respond(request, otp_payload("OTP sent to your phone", result))

    @router.post("/auth/mobile/verify-otp")
    def verify_mobile_otp(request: Request, body: MobileOtpVerifyRequest):
        result = auth_service.verify_mobile_otp(body.phone, body.otp, **client_meta(request))
        return respond(request, session_payload("Login successful", result))

    @router.get("/auth/providers")
    def federated_providers(request: Request):
        """Federated sign-in providers configured on this deployment."""
        return respond(request, {"providers": auth_service.federated_providers})

    @router.post("/auth/{provider}")
    def federated_login(provider: str, request: Request, body: FederatedLoginRequest):
        """Google / Facebook sign-in with a token obtained by the client."""
        result = auth_service.federated_login(provider, body.token, **client_meta(request))
        return respond(request, session_payload(f"{provider.capitalize()} login successful", result))

    # =========================================================================
    # PASSWORD RESET
    # =========================================================================

    @router.post("/forgot-password")
    def forgot_password(request: Request, body: ForgotPasswordRequest):
        auth_service.request_password_reset(body.email, **client_meta(request))
        return respond(request, {
            "message": "If that email is registered, a reset link has been sent.",
        })

    @router.post("/reset-password/{token}")
    def reset_password(token: str, request: Request, body: ResetPasswordRequest):
        auth_service.reset_password(token, body.new_password, **client_meta(request))
        return respond(request, {"message": "Password reset successful."})

    # =========================================================================
    # PROTECTED
    # =========================================================================

    @router.get("/home")
    def home(request: Request):
        """Requires a bearer token (middleware sets request.state.claims)."""
        claims = request.state.claims
        return respond(request, {
            "message": "Welcome to LitVerse!",
            "user": claims.model_dump(mode="json"),
        })

    @router.get("/me")
    def current_user(request: Request):
        claims = request.state.claims
        if claims.is_admin:
            # Admin ids live in a separate table
            raise PermissionDeniedError("Admin tokens have no user profile")
        user = auth_service.get_user(claims.subject)
        return respond(request, {"user": user.model_dump(mode="json")})

    return router
