from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class IssueNewsletterCommand:
    actor_id: str
    idempotency_key: str | None
    title: str | None
    text_content: str | None = None
    html_content: str | None = None
