"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.sms.msg91 import Msg91SmsProvider
from repositories.indexes import ensure_indexes
from repositories.session_repository import MongoSessionRepository
from repositories.token_repository import MongoTokenRepository
from repositories.user_repository import MongoUserRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from services.messages import MessageRenderer
from services.session_service import SessionService
from services.verification_service import VerificationTokenService
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_verification_service(
    settings: AppSettings, db, http_client: HttpClient
) -> VerificationTokenService:
    """Wire the verification service to MongoDB and the notification providers."""
    sms = Msg91SmsProvider(settings.sms, http_client)
    missing = sms.missing_fields()
    if missing:
        log.warning("sms_provider_not_configured", missing=missing)

    return VerificationTokenService(
        tokens=MongoTokenRepository(db),
        users=MongoUserRepository(db),
        sessions=MongoSessionRepository(db),
        renderer=MessageRenderer(
            app_name=settings.app_name,
            reset_url_base=settings.verification.password_reset_url,
        ),
        settings=settings.verification,
        mode=settings.operating_mode,
        email_sender=ZeptoMailProvider(settings.email, http_client),
        sms_sender=sms,
    )


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(settings)

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
            environment=settings.env,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(settings.db.mongodb_uri)
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.settings = settings

        await ensure_indexes(db)

        # One HTTP client for every outbound provider
        http_client = HttpClient()
        app.state.http_client = http_client

        app.state.verification_service = build_verification_service(settings, db, http_client)
        app.state.session_service = SessionService(
            users=MongoUserRepository(db),
            sessions=MongoSessionRepository(db),
            settings=settings.session,
        )

        log.info(
            "app_started",
            env=settings.env,
            mode=settings.operating_mode.value,
            db_name=settings.db.db_name,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await http_client.aclose()
        await mongo_client.close()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # all origins allowed with credentials support.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)

    return app
