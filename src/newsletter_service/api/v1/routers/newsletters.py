from __future__ import annotations

from fastapi import APIRouter, Header, Response

from newsletter_service.api.deps import CurrentPrincipal, PublisherDep, UoWDep
from newsletter_service.api.v1.schemas.newsletter import PublishNewsletterRequest
from newsletter_service.application.dto.newsletter import IssueNewsletterCommand
from newsletter_service.application.policies.permissions import assert_admin
from newsletter_service.config import settings
from newsletter_service.services import newsletter_service
from newsletter_service.services.newsletter_service import PollPolicy

router = APIRouter(prefix="/admin", tags=["newsletters"])


@router.post("/newsletters", status_code=202)
async def publish_newsletter(
    body: PublishNewsletterRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    publisher: PublisherDep,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
) -> Response:
    assert_admin(principal)
    command = IssueNewsletterCommand(
        actor_id=principal.actor_id,
        idempotency_key=body.idempotency_key or idempotency_key,
        title=body.title,
        text_content=body.text_content,
        html_content=body.html_content,
    )
    saved = await newsletter_service.publish_newsletter(
        command,
        uow,
        poll=PollPolicy(
            timeout=settings.IDEMPOTENCY_POLL_TIMEOUT_SECONDS,
            initial_delay=settings.IDEMPOTENCY_POLL_INITIAL_DELAY_SECONDS,
            max_delay=settings.IDEMPOTENCY_POLL_MAX_DELAY_SECONDS,
        ),
        publisher=publisher,
        wakeup_channel=settings.DELIVERY_WAKEUP_CHANNEL,
    )
    # Replayed byte for byte; content-type comes from the saved headers.
    return Response(
        content=saved.body,
        status_code=saved.status_code,
        headers=dict(saved.headers),
    )
