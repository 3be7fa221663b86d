"""
LitVerse backend - FastAPI application factory.

Run with:  uvicorn main:create_app --factory

build_services() reads secrets from Vault and connects to PostgreSQL and
Valkey; create_app() wires routers, middleware and error handlers around
an AppServices bundle, so tests can hand in their own.

Startup bootstraps the first admin account once the credential store is
reachable. It is idempotent, so restarts and multiple workers are safe.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Callable

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.base import ErrorCodes, error_response, success_response
from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.admin_api import create_admin_router
from auth.admin_service import UserAdminService
from auth.api import create_auth_router
from auth.config import AuthConfig, load_auth_config
from auth.database import UserDatabase
from auth.dispatcher import NotificationDispatcher
from auth.identity import IdentityResolver
from auth.otp import OtpEngine
from auth.rate_limiter import RateLimiter
from auth.registration import RegistrationWorkflow
from auth.security_logger import SecurityLogger
from auth.security_middleware import BearerAuthMiddleware
from auth.service import AuthService
from auth.tokens import TokenIssuer
from clients.email_client import EmailGatewayClient
from clients.identity_client import FacebookIdentityVerifier, GoogleIdentityVerifier
from clients.postgres_client import PostgresClient
from clients.sms_client import SmsGatewayClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    VaultError,
    get_admin_config,
    get_database_url,
    get_email_config,
    get_facebook_config,
    get_google_config,
    get_jwt_secret,
    get_sms_config,
    get_valkey_url,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("litverse")


@dataclass
class AppServices:
    """Everything the HTTP layer needs, already wired."""

    config: AuthConfig
    auth_service: AuthService
    registration: RegistrationWorkflow
    user_admin: UserAdminService
    token_issuer: TokenIssuer
    bootstrap_admin: dict[str, str] | None = None
    # Objects with close(), closed on shutdown
    closeables: list[Any] = field(default_factory=list)
    # name -> callable that raises when the backing store is unreachable
    health_checks: dict[str, Callable[[], Any]] = field(default_factory=dict)


def wire_services(
    config: AuthConfig,
    postgres: PostgresClient,
    valkey: ValkeyClient,
    jwt_secret: str,
    email_client: EmailGatewayClient | None = None,
    sms_client: SmsGatewayClient | None = None,
    identity_verifiers: dict | None = None,
    security_logger: SecurityLogger | None = None,
) -> AppServices:
    """Assemble the service graph from already-connected clients."""
    user_db = UserDatabase(postgres)
    security_logger = security_logger or SecurityLogger(postgres)
    rate_limiter = RateLimiter(valkey, config)
    token_issuer = TokenIssuer(jwt_secret, config)
    identity = IdentityResolver(user_db, config)
    dispatcher = NotificationDispatcher(
        email_client,
        sms_client,
        app_name=config.app_name,
        code_lifetime_minutes=config.otp_expiry_minutes,
    )

    registration = RegistrationWorkflow(
        config=config,
        user_db=user_db,
        identity=identity,
        valkey=valkey,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        token_issuer=token_issuer,
        security_logger=security_logger,
    )
    auth_service = AuthService(
        config=config,
        user_db=user_db,
        identity=identity,
        otp_engine=OtpEngine(valkey, config),
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        token_issuer=token_issuer,
        security_logger=security_logger,
        valkey=valkey,
        identity_verifiers=identity_verifiers,
    )
    return AppServices(
        config=config,
        auth_service=auth_service,
        registration=registration,
        user_admin=UserAdminService(user_db, security_logger),
        token_issuer=token_issuer,
    )


def _optional(name: str, loader):
    """Load an optional channel's secrets; None (with a warning) if absent."""
    try:
        return loader()
    except (VaultError, KeyError) as e:
        logger.warning(f"{name} not configured: {e}")
        return None


def build_services() -> AppServices:
    """Production wiring: secrets from Vault, real connections."""
    load_dotenv()
    config = load_auth_config()
    if config.insecure_otp_disclosure:
        logger.warning("insecure_otp_disclosure is ON - undelivered codes are returned to clients")

    postgres = PostgresClient(get_database_url())
    valkey = ValkeyClient(get_valkey_url())

    email_client = EmailGatewayClient(**get_email_config())

    sms_config = _optional("SMS gateway", get_sms_config)
    sms_client = SmsGatewayClient(**sms_config) if sms_config else None

    verifiers = {}
    google = _optional("Google sign-in", get_google_config)
    if google:
        verifiers["google"] = GoogleIdentityVerifier(google["client_id"])
    facebook = _optional("Facebook sign-in", get_facebook_config)
    if facebook:
        verifiers["facebook"] = FacebookIdentityVerifier(facebook["app_id"], facebook["app_secret"])

    services = wire_services(
        config,
        postgres,
        valkey,
        jwt_secret=get_jwt_secret(),
        email_client=email_client,
        sms_client=sms_client,
        identity_verifiers=verifiers,
    )
    services.bootstrap_admin = get_admin_config()
    services.closeables = [valkey, postgres]
    services.health_checks = {"postgres": postgres.ping, "valkey": valkey.ping}
    return services


def run_health_checks(checks: dict[str, Callable[[], Any]]) -> dict[str, str]:
    """Ping every store; "ok" or "unavailable" per name."""
    results = {}
    for name, check in checks.items():
        try:
            check()
            results[name] = "ok"
        except Exception as e:
            logger.error(f"Health check {name} failed: {e}")
            results[name] = "unavailable"
    return results


def create_app(services: AppServices | None = None) -> FastAPI:
    """Build the FastAPI app around a service bundle (built from Vault if omitted)."""
    services = services or build_services()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("LitVerse API starting up")
        if services.bootstrap_admin:
            created = services.auth_service.ensure_bootstrap_admin(
                services.bootstrap_admin["email"],
                services.bootstrap_admin["password"],
            )
            logger.info(f"Admin bootstrap: {'created' if created else 'already present'}")

        yield

        for resource in services.closeables:
            resource.close()
        logger.info("LitVerse API shutdown complete")

    app = FastAPI(title="LitVerse API", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    # Starlette runs the last-added middleware first: RequestID wraps everything
    app.add_middleware(BearerAuthMiddleware, token_issuer=services.token_issuer)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173", "http://localhost:5175"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=True,
    )
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    app.include_router(create_auth_router(services.auth_service, services.registration))
    app.include_router(
        create_admin_router(services.auth_service, services.user_admin),
        prefix="/api/admin",
    )

    # Plain def: the store pings block, so FastAPI runs this in its threadpool
    @app.get("/health")
    def health(request: Request):
        request_id = getattr(request.state, "request_id", None)
        checks = run_health_checks(services.health_checks)
        failed = sorted(name for name, status in checks.items() if status != "ok")
        if failed:
            return JSONResponse(
                status_code=503,
                content=error_response(
                    ErrorCodes.SERVICE_UNAVAILABLE,
                    f"Unavailable: {', '.join(failed)}",
                    request_id=request_id,
                ).model_dump(mode="json"),
            )
        return success_response({"status": "ok", "checks": checks}, request_id=request_id)

    return app
