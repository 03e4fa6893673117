"""Seed development data: a few confirmed and pending subscribers."""
from __future__ import annotations

import asyncio
import logging

from newsletter_service.domain.value_objects.enums import SubscriptionStatus
from newsletter_service.infrastructure.db.session import AsyncSessionLocal
from newsletter_service.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

SUBSCRIBERS = [
    ("ursula@example.com", "Ursula Le Guin", SubscriptionStatus.CONFIRMED),
    ("octavia@example.com", "Octavia Butler", SubscriptionStatus.CONFIRMED),
    ("stanislaw@example.com", "Stanislaw Lem", SubscriptionStatus.PENDING_CONFIRMATION),
]


async def seed() -> None:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        for email, name, status in SUBSCRIBERS:
            await uow.subscribers.add(email, name, status)
        await uow.commit()
        logger.info("Seeded %d subscribers", len(SUBSCRIBERS))


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
