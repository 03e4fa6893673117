from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class SavedResponse:
    """HTTP response snapshot replayed verbatim to duplicate requests."""

    status_code: int
    headers: list[tuple[str, str]]
    body: bytes


@dataclass(frozen=True, slots=True)
class IdempotencyRecord:
    actor_id: str
    idempotency_key: str
    created_at: datetime
    response: SavedResponse | None = None
