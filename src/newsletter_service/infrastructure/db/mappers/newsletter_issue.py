from __future__ import annotations

from newsletter_service.domain.entities.newsletter_issue import NewsletterIssue
from newsletter_service.infrastructure.db.models.newsletter_issue import NewsletterIssueModel


def model_to_entity(model: NewsletterIssueModel) -> NewsletterIssue:
    return NewsletterIssue(
        id=model.id,
        title=model.title,
        text_content=model.text_content,
        html_content=model.html_content,
        created_at=model.created_at,
    )


def entity_to_model(entity: NewsletterIssue) -> NewsletterIssueModel:
    return NewsletterIssueModel(
        id=entity.id,
        title=entity.title,
        text_content=entity.text_content,
        html_content=entity.html_content,
        created_at=entity.created_at,
    )
