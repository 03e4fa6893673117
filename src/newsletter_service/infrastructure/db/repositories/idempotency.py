from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.application.exceptions import IdempotencyFinalizeError
from newsletter_service.application.repositories.idempotency import BeginResult, BeginStatus
from newsletter_service.domain.entities.idempotency_record import (
    IdempotencyRecord,
    SavedResponse,
)
from newsletter_service.infrastructure.db.mappers import idempotency as mapper
from newsletter_service.infrastructure.db.models.idempotency import IdempotencyModel

LOCK_NOT_AVAILABLE = "55P03"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class IdempotencyRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def begin(self, actor_id: str, key: str) -> BeginResult:
        """Insert an in-progress row; the primary key decides who owns the key.

        A concurrent uncommitted insert of the same key makes this statement
        wait until the other transaction ends or lock_timeout expires.
        """
        stmt = (
            pg_insert(IdempotencyModel)
            .values(actor_id=actor_id, idempotency_key=key)
            .on_conflict_do_nothing(index_elements=["actor_id", "idempotency_key"])
            .returning(IdempotencyModel.actor_id)
        )
        try:
            result = await self._session.execute(stmt)
        except DBAPIError as exc:
            # lock_timeout hit: the other transaction is still running. The
            # session is now unusable until the caller rolls back.
            if _sqlstate(exc) == LOCK_NOT_AVAILABLE:
                return BeginResult(BeginStatus.IN_PROGRESS)
            raise
        if result.scalar_one_or_none() is not None:
            return BeginResult(BeginStatus.STARTED)

        existing = await self.load(actor_id, key)
        if existing is not None and existing.response is not None:
            return BeginResult(BeginStatus.FINALIZED, existing.response)
        return BeginResult(BeginStatus.IN_PROGRESS)

    async def finalize(self, actor_id: str, key: str, response: SavedResponse) -> None:
        stmt = (
            update(IdempotencyModel)
            .where(
                IdempotencyModel.actor_id == actor_id,
                IdempotencyModel.idempotency_key == key,
                IdempotencyModel.response_status_code.is_(None),
            )
            .values(
                response_status_code=response.status_code,
                response_headers=mapper.headers_to_json(response.headers),
                response_body=response.body,
            )
            .returning(IdempotencyModel.actor_id)
        )
        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is None:
            raise IdempotencyFinalizeError(
                f"No in-progress idempotency record for actor={actor_id} key={key}"
            )

    async def load(self, actor_id: str, key: str) -> IdempotencyRecord | None:
        stmt = (
            select(IdempotencyModel)
            .where(
                IdempotencyModel.actor_id == actor_id,
                IdempotencyModel.idempotency_key == key,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None
