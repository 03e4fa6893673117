from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class NewsletterIssue:
    id: UUID
    title: str
    text_content: str | None
    html_content: str | None
    created_at: datetime
