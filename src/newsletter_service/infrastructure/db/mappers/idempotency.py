from __future__ import annotations

from typing import Any

from newsletter_service.domain.entities.idempotency_record import (
    IdempotencyRecord,
    SavedResponse,
)
from newsletter_service.infrastructure.db.models.idempotency import IdempotencyModel


def headers_to_json(headers: list[tuple[str, str]]) -> list[list[str]]:
    return [[name, value] for name, value in headers]


def headers_from_json(raw: list[Any]) -> list[tuple[str, str]]:
    return [(str(name), str(value)) for name, value in raw]


def model_to_entity(model: IdempotencyModel) -> IdempotencyRecord:
    response = None
    if model.response_status_code is not None:
        response = SavedResponse(
            status_code=model.response_status_code,
            headers=headers_from_json(model.response_headers or []),
            body=bytes(model.response_body or b""),
        )
    return IdempotencyRecord(
        actor_id=model.actor_id,
        idempotency_key=model.idempotency_key,
        created_at=model.created_at,
        response=response,
    )
