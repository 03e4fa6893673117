from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from newsletter_service.api.middleware.correlation_id import CorrelationIdMiddleware
from newsletter_service.api.v1.routers import health, newsletters
from newsletter_service.application.exceptions import (
    ConflictError,
    ForbiddenError,
    IdempotencyFinalizeError,
    ValidationError,
)
from newsletter_service.config import settings
from newsletter_service.infrastructure.bus.redis_pubsub import RedisPubSubPublisher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    app.state.publisher = RedisPubSubPublisher(app.state.redis)
    logger.info("Redis connection pool created")

    yield

    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Newsletter Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(newsletters.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return JSONResponse(status_code=403, content={"detail": exc.detail})

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": exc.detail},
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(IdempotencyFinalizeError)
    async def _finalize(_req: Request, exc: IdempotencyFinalizeError) -> JSONResponse:
        logger.error("Idempotency invariant violated: %s", exc.detail)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
