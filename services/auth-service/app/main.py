"""FastAPI application wiring for the auth service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import install_error_handlers
from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.otp import OtpManager
from .domain.password_reset import PasswordResetManager
from .domain.registry import AccountRegistry
from .domain.service import AuthOrchestrator
from .notifications import build_notification_gateway
from .repository import AccountRepository
from .security.tokens import SessionIssuer

# Fails fast with ConfigurationError when JWT_SECRET is missing.
settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def build_auth_service(repository: AccountRepository, settings: Settings) -> AuthOrchestrator:
    """Assemble the orchestrator and its collaborators from configuration."""
    registry = AccountRegistry(repository)
    return AuthOrchestrator(
        registry=registry,
        otp_manager=OtpManager(
            registration_ttl_seconds=settings.registration_otp_ttl_seconds,
            login_ttl_seconds=settings.login_otp_ttl_seconds,
        ),
        session_issuer=SessionIssuer.from_settings(settings),
        password_resets=PasswordResetManager(
            registry,
            ttl_seconds=settings.reset_token_ttl_seconds,
            bcrypt_rounds=settings.bcrypt_rounds,
        ),
        notifier=build_notification_gateway(settings),
        frontend_url=settings.frontend_url,
        reset_ttl_minutes=settings.reset_token_ttl_seconds // 60,
        bcrypt_rounds=settings.bcrypt_rounds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    app.state.pool = pool
    app.state.auth_service = build_auth_service(AccountRepository(pool), settings)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)

install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
    )
