"""
Mail QR Gateway — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from api.routes import router
from config.settings import Settings, config
from connectors.client_factory import OAuthClientFactory
from connectors.exceptions import ConfigMissing
from connectors.flow import AuthorizationFlow
from connectors.gmail import MailboxQueryService
from connectors.registration import load_client_registration
from connectors.token_store import CredentialStore
from utils.schemas import ClientRegistration

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "urllib3", "googleapiclient.discovery_cache"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def build_connectors(app: FastAPI, settings: Settings, registration: ClientRegistration) -> None:
    """Wire store → factory → flow and the mailbox service onto ``app.state``."""
    store = CredentialStore(settings.token_dir)
    factory = OAuthClientFactory(
        registration,
        store,
        settings.gmail_scopes,
        cache_clients=settings.cache_clients,
        timeout=settings.http_timeout,
    )
    app.state.registration = registration
    app.state.store = store
    app.state.factory = factory
    app.state.flow = AuthorizationFlow(factory, refresh_skew_seconds=settings.refresh_skew_seconds)
    app.state.mailbox = MailboxQueryService(settings)


def create_app(
    settings: Optional[Settings] = None,
    registration: Optional[ClientRegistration] = None,
) -> FastAPI:
    settings = settings or config
    app = FastAPI(
        title="Mail QR Gateway",
        version="1.0.0",
        description="Per-user Gmail OAuth and QR check-in feed.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)
    app.include_router(router)

    @app.on_event("startup")
    async def on_startup():
        reg = registration or load_client_registration(settings.credentials_file)
        build_connectors(app, settings, reg)
        logger.info("Token directory: %s", settings.token_dir)
        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    # Fail before binding the port if the client registration is unusable.
    try:
        load_client_registration(config.credentials_file)
    except ConfigMissing as exc:
        logger.error("Error loading %s: %s", config.credentials_file, exc.detail)
        sys.exit(1)

    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
