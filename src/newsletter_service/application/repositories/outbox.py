from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from newsletter_service.domain.entities.delivery_task import DeliveryTask


class DeliveryOutbox(Protocol):
    async def enqueue_many(self, tasks: list[DeliveryTask]) -> None: ...

    async def dequeue_batch(self, now: datetime, limit: int) -> list[DeliveryTaskRecord]:
        """Lock up to ``limit`` due tasks, skipping rows locked by other workers."""
        ...

    async def ack_success(self, task_id: int) -> None: ...

    async def ack_retry(self, task_id: int, next_attempt_at: datetime) -> None: ...

    async def ack_drop(self, task_id: int, reason: str) -> None: ...


class DeliveryTaskRecord:
    """Lightweight read-model for the delivery worker: task joined with its issue."""

    __slots__ = (
        "id",
        "newsletter_issue_id",
        "recipient_address",
        "attempt_count",
        "title",
        "text_content",
        "html_content",
    )

    def __init__(
        self,
        id: int,
        newsletter_issue_id: UUID,
        recipient_address: str,
        attempt_count: int,
        title: str,
        text_content: str | None,
        html_content: str | None,
    ) -> None:
        self.id = id
        self.newsletter_issue_id = newsletter_issue_id
        self.recipient_address = recipient_address
        self.attempt_count = attempt_count
        self.title = title
        self.text_content = text_content
        self.html_content = html_content
