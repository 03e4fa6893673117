from __future__ import annotations

from typing import Protocol

from newsletter_service.domain.entities.newsletter_issue import NewsletterIssue


class NewsletterIssueWriter(Protocol):
    async def create(self, issue: NewsletterIssue) -> NewsletterIssue: ...
