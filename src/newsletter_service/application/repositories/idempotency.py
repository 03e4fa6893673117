from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from newsletter_service.domain.entities.idempotency_record import (
    IdempotencyRecord,
    SavedResponse,
)


class BeginStatus(StrEnum):
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    FINALIZED = "finalized"


@dataclass(frozen=True, slots=True)
class BeginResult:
    status: BeginStatus
    response: SavedResponse | None = None


class IdempotencyStore(Protocol):
    async def begin(self, actor_id: str, key: str) -> BeginResult:
        """Reserve (actor_id, key) by inserting an in-progress record.

        STARTED means this caller owns the key within the current transaction.
        IN_PROGRESS / FINALIZED mean another request inserted it first.
        """
        ...

    async def finalize(self, actor_id: str, key: str, response: SavedResponse) -> None:
        """Fill the response of an in-progress record.

        Raises IdempotencyFinalizeError if the record is missing or already finalized.
        """
        ...

    async def load(self, actor_id: str, key: str) -> IdempotencyRecord | None: ...
