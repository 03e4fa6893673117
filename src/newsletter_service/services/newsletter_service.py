from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass

from newsletter_service.application.dto.newsletter import IssueNewsletterCommand
from newsletter_service.application.exceptions import ConflictError, ValidationError
from newsletter_service.application.ports.bus import EventPublisher
from newsletter_service.application.ports.clock import Clock, SystemClock
from newsletter_service.application.repositories.idempotency import BeginStatus
from newsletter_service.application.uow import UnitOfWork
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.entities.idempotency_record import SavedResponse
from newsletter_service.domain.entities.newsletter_issue import NewsletterIssue

logger = logging.getLogger(__name__)

ACCEPTED_STATUS_CODE = 202
ACCEPTED_MESSAGE = "The newsletter issue has been accepted - emails will go out shortly."
IDEMPOTENCY_KEY_MAX_LENGTH = 50
ACTOR_ID_MAX_LENGTH = 255

_ACCEPTED_BODY = json.dumps(
    {"status": "accepted", "message": ACCEPTED_MESSAGE},
    separators=(",", ":"),
).encode("utf-8")


@dataclass(frozen=True, slots=True)
class PollPolicy:
    """Bounded wait for a concurrent request holding the same idempotency key."""

    timeout: float = 10.0
    initial_delay: float = 0.05
    max_delay: float = 1.0


def accepted_response() -> SavedResponse:
    return SavedResponse(
        status_code=ACCEPTED_STATUS_CODE,
        headers=[("content-type", "application/json")],
        body=_ACCEPTED_BODY,
    )


def validate_command(command: IssueNewsletterCommand) -> tuple[str, str]:
    """Return (title, idempotency_key) or raise ValidationError."""
    if len(command.actor_id) > ACTOR_ID_MAX_LENGTH:
        raise ValidationError(f"Caller id must be at most {ACTOR_ID_MAX_LENGTH} characters")
    title = (command.title or "").strip()
    if not title:
        raise ValidationError("Newsletter title is required")
    if not (command.text_content or command.html_content):
        raise ValidationError("Newsletter needs text_content or html_content")

    key = (command.idempotency_key or "").strip()
    if not key:
        raise ValidationError("Idempotency key is required")
    if len(key) > IDEMPOTENCY_KEY_MAX_LENGTH:
        raise ValidationError(
            f"Idempotency key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters"
        )
    return title, key


async def publish_newsletter(
    command: IssueNewsletterCommand,
    uow: UnitOfWork,
    *,
    poll: PollPolicy = PollPolicy(),
    clock: Clock | None = None,
    publisher: EventPublisher | None = None,
    wakeup_channel: str | None = None,
) -> SavedResponse:
    """Issue a newsletter at most once per (actor, idempotency key).

    The first request reserves the key, creates the issue and one delivery
    task per confirmed subscriber in a single transaction, then saves the
    response in a second one. Duplicates get the saved response back
    verbatim, waiting up to ``poll.timeout`` while the first request is
    still running. No email is sent here; the delivery worker drains the
    queue.
    """
    title, key = validate_command(command)
    actor_id = command.actor_id
    clock = clock or SystemClock()

    outcome = await uow.idempotency.begin(actor_id, key)
    if outcome.status == BeginStatus.FINALIZED:
        await uow.rollback()
        assert outcome.response is not None
        logger.info("Replaying saved response for actor=%s key=%s", actor_id, key)
        return outcome.response
    if outcome.status == BeginStatus.IN_PROGRESS:
        await uow.rollback()
        return await _wait_for_saved_response(uow, actor_id, key, poll)

    now = clock.now()
    issue = await uow.issues_w.create(
        NewsletterIssue(
            id=uuid.uuid4(),
            title=title,
            text_content=command.text_content,
            html_content=command.html_content,
            created_at=now,
        )
    )
    addresses = await uow.subscribers.list_confirmed_addresses()
    tasks = [
        DeliveryTask(
            newsletter_issue_id=issue.id,
            recipient_address=address,
            enqueued_at=now,
            next_attempt_at=now,
        )
        for address in addresses
    ]
    await uow.outbox.enqueue_many(tasks)
    await uow.commit()

    response = accepted_response()
    await uow.idempotency.finalize(actor_id, key, response)
    await uow.commit()

    logger.info(
        "Newsletter issue %s accepted for actor=%s key=%s (%d deliveries queued)",
        issue.id, actor_id, key, len(tasks),
    )

    if tasks and publisher is not None and wakeup_channel:
        await _notify_workers(publisher, wakeup_channel, issue.id, len(tasks))

    return response


async def _wait_for_saved_response(
    uow: UnitOfWork,
    actor_id: str,
    key: str,
    poll: PollPolicy,
) -> SavedResponse:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + poll.timeout
    delay = poll.initial_delay

    while True:
        record = await uow.idempotency.load(actor_id, key)
        await uow.rollback()
        if record is not None and record.response is not None:
            logger.info("Concurrent request finished; replaying actor=%s key=%s", actor_id, key)
            return record.response

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.warning(
                "Idempotency key still in progress after %.1fs: actor=%s key=%s",
                poll.timeout, actor_id, key,
            )
            raise ConflictError("A request with this idempotency key is still being processed")
        await asyncio.sleep(min(delay, remaining))
        delay = min(delay * 2, poll.max_delay)


async def _notify_workers(
    publisher: EventPublisher,
    channel: str,
    issue_id: uuid.UUID,
    task_count: int,
) -> None:
    try:
        await publisher.publish(
            channel,
            {
                "event_type": "delivery.enqueued",
                "newsletter_issue_id": str(issue_id),
                "task_count": task_count,
            },
        )
    except Exception:  # noqa: BLE001
        # Workers still find the tasks on their next poll.
        logger.warning("Failed to publish delivery wake-up for issue %s", issue_id, exc_info=True)
