from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.application.repositories.outbox import DeliveryTaskRecord
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.infrastructure.db.models.delivery_failure import DeliveryFailureModel
from newsletter_service.infrastructure.db.models.delivery_task import DeliveryTaskModel
from newsletter_service.infrastructure.db.models.newsletter_issue import NewsletterIssueModel


class DeliveryOutboxRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def enqueue_many(self, tasks: list[DeliveryTask]) -> None:
        if not tasks:
            return
        await self._session.execute(
            insert(DeliveryTaskModel),
            [
                {
                    "newsletter_issue_id": t.newsletter_issue_id,
                    "recipient_address": t.recipient_address,
                    "attempt_count": t.attempt_count,
                    "enqueued_at": t.enqueued_at,
                    "next_attempt_at": t.next_attempt_at,
                }
                for t in tasks
            ],
        )

    async def dequeue_batch(self, now: datetime, limit: int) -> list[DeliveryTaskRecord]:
        # Row locks live until the caller's transaction ends; other workers skip them.
        stmt = (
            select(DeliveryTaskModel, NewsletterIssueModel)
            .join(
                NewsletterIssueModel,
                NewsletterIssueModel.id == DeliveryTaskModel.newsletter_issue_id,
            )
            .where(DeliveryTaskModel.next_attempt_at <= now)
            .order_by(DeliveryTaskModel.next_attempt_at.asc(), DeliveryTaskModel.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True, of=DeliveryTaskModel)
        )
        result = await self._session.execute(stmt)
        return [
            DeliveryTaskRecord(
                id=task.id,
                newsletter_issue_id=task.newsletter_issue_id,
                recipient_address=task.recipient_address,
                attempt_count=task.attempt_count,
                title=issue.title,
                text_content=issue.text_content,
                html_content=issue.html_content,
            )
            for task, issue in result.all()
        ]

    async def ack_success(self, task_id: int) -> None:
        await self._session.execute(
            delete(DeliveryTaskModel).where(DeliveryTaskModel.id == task_id)
        )

    async def ack_retry(self, task_id: int, next_attempt_at: datetime) -> None:
        stmt = (
            update(DeliveryTaskModel)
            .where(DeliveryTaskModel.id == task_id)
            .values(
                attempt_count=DeliveryTaskModel.attempt_count + 1,
                next_attempt_at=next_attempt_at,
            )
        )
        await self._session.execute(stmt)

    async def ack_drop(self, task_id: int, reason: str) -> None:
        stmt = (
            delete(DeliveryTaskModel)
            .where(DeliveryTaskModel.id == task_id)
            .returning(
                DeliveryTaskModel.newsletter_issue_id,
                DeliveryTaskModel.recipient_address,
                DeliveryTaskModel.attempt_count,
            )
        )
        result = await self._session.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return
        self._session.add(
            DeliveryFailureModel(
                task_id=task_id,
                newsletter_issue_id=row.newsletter_issue_id,
                recipient_address=row.recipient_address,
                attempts=row.attempt_count + 1,
                reason=reason,
            )
        )
        await self._session.flush()
