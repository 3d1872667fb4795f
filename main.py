"""
SEO Analytics Dashboard API — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.analytics import router as ai_router
from api.auth import router as auth_router
from api.data import router as data_router
from api.middleware import register_exception_handlers, register_middleware
from api.routes import router as api_router
from api.users import router as users_router
from billing.routes import router as billing_router
from config.settings import config
from connectors.registry import ConnectorRegistry
from connectors.routes import router as connectors_router
from utils.encryption import is_encryption_configured

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "openai", "anthropic", "urllib3", "hpack"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="SEO Analytics Dashboard API",
        version="1.0.0",
        description="GA4 / Search Console / PageSpeed data, Google OAuth and PayPal billing.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # connectors last: its /{provider}/... paths would shadow /auth/callback
    app.include_router(auth_router, prefix="/api/auth")
    app.include_router(api_router, prefix="/api")
    app.include_router(data_router, prefix="/api")
    app.include_router(users_router, prefix="/api")
    app.include_router(billing_router, prefix="/api")
    app.include_router(ai_router, prefix="/api")
    app.include_router(connectors_router, prefix="/api")

    @app.on_event("startup")
    async def on_startup():
        ConnectorRegistry().log_status()

        if not is_encryption_configured():
            logger.warning(
                "ENCRYPTION_KEY is not set — OAuth tokens will be stored unencrypted "
                "and LLM API keys cannot be saved"
            )
        if not config.paypal_webhook_id:
            logger.warning("PAYPAL_WEBHOOK_ID is not set — PayPal webhooks will be refused")

        logger.info("Application ready to accept requests.")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
