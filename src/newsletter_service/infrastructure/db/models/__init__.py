"""Import all models so Base.metadata knows every table."""
from newsletter_service.infrastructure.db.models.delivery_failure import DeliveryFailureModel
from newsletter_service.infrastructure.db.models.delivery_task import DeliveryTaskModel
from newsletter_service.infrastructure.db.models.idempotency import IdempotencyModel
from newsletter_service.infrastructure.db.models.newsletter_issue import NewsletterIssueModel
from newsletter_service.infrastructure.db.models.subscription import SubscriptionModel

__all__ = [
    "DeliveryFailureModel",
    "DeliveryTaskModel",
    "IdempotencyModel",
    "NewsletterIssueModel",
    "SubscriptionModel",
]
