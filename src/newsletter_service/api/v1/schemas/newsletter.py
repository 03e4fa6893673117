from __future__ import annotations

from pydantic import BaseModel


class PublishNewsletterRequest(BaseModel):
    # All optional: missing fields are reported by the service as 400s.
    title: str | None = None
    text_content: str | None = None
    html_content: str | None = None
    idempotency_key: str | None = None
