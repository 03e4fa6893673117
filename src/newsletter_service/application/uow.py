from __future__ import annotations

from typing import Protocol

from newsletter_service.application.repositories.idempotency import IdempotencyStore
from newsletter_service.application.repositories.newsletter import NewsletterIssueWriter
from newsletter_service.application.repositories.outbox import DeliveryOutbox
from newsletter_service.application.repositories.subscriber import SubscriberDirectory


class UnitOfWork(Protocol):
    idempotency: IdempotencyStore
    issues_w: NewsletterIssueWriter
    subscribers: SubscriberDirectory
    outbox: DeliveryOutbox

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
