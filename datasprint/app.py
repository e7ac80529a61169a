"""
FastAPI application entry point for the contest backend.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from datasprint.cache import MemoryCache, sweep_periodically
from datasprint.config import Settings, get_settings
from datasprint.errors import DatasprintError
from datasprint.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the cache sweeper; stop it and drop the cache on shutdown."""
    settings: Settings = app.state.settings
    sweeper = asyncio.create_task(
        sweep_periodically(app.state.cache, settings.cache_cleanup_interval_seconds)
    )
    logger.info("DataSprint backend started")
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        app.state.cache.clear()
        logger.info("DataSprint backend shutting down")


async def datasprint_error_handler(request: Request, exc: DatasprintError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.http_status, content=exc.as_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "Invalid request payload",
            "details": jsonable_encoder(exc.errors()),
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(
        title="DataSprint Backend (FastAPI)", version="0.1.0", lifespan=lifespan
    )
    app.state.settings = settings
    app.state.cache = MemoryCache()

    app.add_exception_handler(DatasprintError, datasprint_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.middleware("http")
    async def log_slow_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        if duration > settings.slow_request_seconds:
            logger.warning(
                "Slow request: %s %s took %.0fms",
                request.method,
                request.url.path,
                duration * 1000,
            )
        return response

    app.include_router(router, prefix=settings.api_prefix)
    return app


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

app = create_app()
