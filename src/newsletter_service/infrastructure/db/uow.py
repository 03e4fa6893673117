from __future__ import annotations

from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.infrastructure.db.repositories.idempotency import IdempotencyRepo
from newsletter_service.infrastructure.db.repositories.newsletter_issue import (
    NewsletterIssueWriterRepo,
)
from newsletter_service.infrastructure.db.repositories.outbox import DeliveryOutboxRepo
from newsletter_service.infrastructure.db.repositories.subscription import SubscriptionRepo


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.idempotency = IdempotencyRepo(session)
        self.issues_w = NewsletterIssueWriterRepo(session)
        self.subscribers = SubscriptionRepo(session)
        self.outbox = DeliveryOutboxRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()
