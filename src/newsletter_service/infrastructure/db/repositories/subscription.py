from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.domain.value_objects.enums import SubscriptionStatus
from newsletter_service.infrastructure.db.models.subscription import SubscriptionModel


class SubscriptionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_confirmed_addresses(self) -> list[str]:
        stmt = (
            select(SubscriptionModel.email)
            .where(SubscriptionModel.status == SubscriptionStatus.CONFIRMED)
            .order_by(SubscriptionModel.subscribed_at.asc(), SubscriptionModel.email.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def add(self, email: str, name: str, status: SubscriptionStatus) -> None:
        self._session.add(SubscriptionModel(email=email, name=name, status=status.value))
        await self._session.flush()
