"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from connectors.errors import ConnectionNotFound

logger = logging.getLogger(__name__)

_QUIET_PATHS = {"/api/v1/health"}


def register_middleware(app: FastAPI) -> None:
    """Attach app-level middleware and answer missing connections with a JSON 404."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s → %d (%.3fs)",
                request.method, request.url.path, response.status_code, elapsed,
            )
        return response

    @app.exception_handler(ConnectionNotFound)
    async def connection_not_found_handler(request: Request, exc: ConnectionNotFound):
        logger.warning("%s on %s: %s", exc.error_code, request.url.path, exc.message)
        return JSONResponse(
            status_code=404,
            content={"error": exc.message, "code": exc.error_code},
        )
