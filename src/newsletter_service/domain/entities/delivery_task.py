from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class DeliveryTask:
    """One pending email to one subscriber for one newsletter issue.

    ``id`` is assigned by storage on enqueue and is ``None`` before that.
    """

    newsletter_issue_id: UUID
    recipient_address: str
    enqueued_at: datetime
    next_attempt_at: datetime
    attempt_count: int = 0
    id: int | None = None
