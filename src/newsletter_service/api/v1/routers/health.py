from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from newsletter_service.infrastructure.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Postgres is required. Redis only carries wake-up hints, so it degrades."""
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Readiness check failed: postgres: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": [f"postgres: {exc}"]},
        )

    redis = getattr(request.app.state, "redis", None)
    try:
        if redis is None:
            raise RuntimeError("not configured")
        await redis.ping()
    except Exception as exc:  # noqa: BLE001
        return JSONResponse(content={"status": "degraded", "warnings": [f"redis: {exc}"]})

    return JSONResponse(content={"status": "ready"})
