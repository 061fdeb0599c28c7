"""
Creator account linking & sync service — application entry point.
"""

from __future__ import annotations

import logging
import sys

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_middleware
from config.settings import config
from connectors.registry import ConnectorRegistry
from connectors.routes import router as connections_router
from database.session import create_tables, dispose_engine

logging.basicConfig(
    level=getattr(logging, (config.log_level or ("DEBUG" if config.debug else "INFO")).upper(), logging.INFO),
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "asyncio"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(init_db: bool = True) -> FastAPI:
    app = FastAPI(
        title="Creator Account Sync",
        version="1.0.0",
        description="Link YouTube, Instagram and TikTok accounts and keep their analytics in sync.",
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

    # Routes
    app.include_router(connections_router, prefix="/api/v1")

    @app.get("/api/v1/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.on_event("startup")
    async def on_startup():
        if init_db:
            logger.info("Ensuring database schema…")
            await create_tables()

        logger.info("Discovering platform connectors…")
        registry = ConnectorRegistry()
        registry.discover()
        configured = [p["platform"] for p in registry.list_platforms() if p["configured"]]
        if not configured:
            logger.warning("No platform credentials configured; OAuth linking is disabled")

        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        await dispose_engine()

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
