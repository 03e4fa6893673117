from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from newsletter_service.domain.entities.newsletter_issue import NewsletterIssue
from newsletter_service.infrastructure.db.mappers import newsletter_issue as mapper


class NewsletterIssueWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, issue: NewsletterIssue) -> NewsletterIssue:
        model = mapper.entity_to_model(issue)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)
