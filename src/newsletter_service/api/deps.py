"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from newsletter_service.application.dto.principal import Principal
from newsletter_service.application.ports.auth import TokenVerifier
from newsletter_service.application.ports.bus import EventPublisher
from newsletter_service.config import settings
from newsletter_service.infrastructure.auth.hs256_verifier import HS256Verifier
from newsletter_service.infrastructure.db.session import AsyncSessionLocal
from newsletter_service.infrastructure.db.uow import SqlAlchemyUoW

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_event_publisher(request: Request) -> EventPublisher | None:
    return getattr(request.app.state, "publisher", None)


PublisherDep = Annotated[EventPublisher | None, Depends(get_event_publisher)]
