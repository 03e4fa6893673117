from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone

import pytest

from newsletter_service.application.dto.newsletter import IssueNewsletterCommand
from newsletter_service.application.exceptions import ConflictError, ValidationError
from newsletter_service.domain.entities.idempotency_record import IdempotencyRecord
from newsletter_service.domain.value_objects.enums import SubscriptionStatus
from newsletter_service.services import newsletter_service
from newsletter_service.services.newsletter_service import (
    ACCEPTED_MESSAGE,
    PollPolicy,
    accepted_response,
)
from tests.conftest import FakeClock, FakeDatabase, FakePublisher, FakeUoW

FAST_POLL = PollPolicy(timeout=1.0, initial_delay=0.005, max_delay=0.02)


def make_command(
    key: str = "key-1",
    *,
    actor_id: str = "admin-42",
    title: str | None = "Weekly digest",
    text: str | None = "Plain body",
    html: str | None = "<p>Html body</p>",
) -> IssueNewsletterCommand:
    return IssueNewsletterCommand(
        actor_id=actor_id,
        idempotency_key=key,
        title=title,
        text_content=text,
        html_content=html,
    )


@pytest.fixture
def db() -> FakeDatabase:
    db = FakeDatabase()
    db.subscribe("confirmed@example.com")
    db.subscribe("pending@example.com", SubscriptionStatus.PENDING_CONFIRMATION)
    return db


@pytest.mark.asyncio
async def test_publish_enqueues_one_task_per_confirmed_subscriber(db):
    clock = FakeClock()

    response = await newsletter_service.publish_newsletter(make_command(), FakeUoW(db), clock=clock)

    assert response.status_code == 202
    assert json.loads(response.body)["message"] == ACCEPTED_MESSAGE
    assert [t.recipient_address for t in db.tasks.values()] == ["confirmed@example.com"]
    task = next(iter(db.tasks.values()))
    assert task.attempt_count == 0
    assert task.enqueued_at == task.next_attempt_at == clock.now()
    assert len(db.issues) == 1
    assert task.newsletter_issue_id in db.issues


@pytest.mark.asyncio
async def test_publish_finalizes_idempotency_record(db):
    response = await newsletter_service.publish_newsletter(make_command("k"), FakeUoW(db))

    record = db.idempotency[("admin-42", "k")]
    assert record.response == response


@pytest.mark.asyncio
async def test_sequential_duplicate_replays_saved_response(db):
    first = await newsletter_service.publish_newsletter(make_command("K1"), FakeUoW(db))
    second = await newsletter_service.publish_newsletter(
        make_command("K1", title="Something else", text="other", html=None),
        FakeUoW(db),
    )

    assert second.body == first.body
    assert second.status_code == first.status_code
    assert second.headers == first.headers
    assert len(db.tasks) == 1
    assert len(db.issues) == 1
    assert db.enumerations == 1


@pytest.mark.asyncio
async def test_concurrent_duplicates_enumerate_once(db):
    db.enumeration_delay = 0.05

    responses = await asyncio.gather(
        *(
            newsletter_service.publish_newsletter(make_command("K2"), FakeUoW(db), poll=FAST_POLL)
            for _ in range(5)
        )
    )

    assert db.enumerations == 1
    assert len(db.tasks) == 1
    assert len({(r.status_code, r.body) for r in responses}) == 1


@pytest.mark.asyncio
async def test_zero_confirmed_subscribers_still_accepted():
    db = FakeDatabase()
    db.subscribe("pending@example.com", SubscriptionStatus.PENDING_CONFIRMATION)

    response = await newsletter_service.publish_newsletter(make_command(), FakeUoW(db))

    assert response == accepted_response()
    assert db.tasks == {}
    assert db.idempotency[("admin-42", "key-1")].response is not None


@pytest.mark.asyncio
async def test_same_key_is_scoped_per_actor(db):
    await newsletter_service.publish_newsletter(make_command("shared", actor_id="a"), FakeUoW(db))
    await newsletter_service.publish_newsletter(make_command("shared", actor_id="b"), FakeUoW(db))

    assert len(db.issues) == 2
    assert len(db.tasks) == 2


@pytest.mark.asyncio
async def test_stranded_reservation_raises_conflict(db):
    db.idempotency[("admin-42", "stuck")] = IdempotencyRecord(
        actor_id="admin-42",
        idempotency_key="stuck",
        created_at=datetime.now(timezone.utc),
    )

    with pytest.raises(ConflictError):
        await newsletter_service.publish_newsletter(
            make_command("stuck"),
            FakeUoW(db),
            poll=PollPolicy(timeout=0.05, initial_delay=0.01, max_delay=0.01),
        )
    assert db.tasks == {}


@pytest.mark.parametrize(
    "command",
    [
        make_command(title=None),
        make_command(title="   "),
        make_command(text=None, html=None),
        make_command(key=""),
        make_command(key="x" * 51),
        make_command(actor_id="a" * 256),
    ],
    ids=["no-title", "blank-title", "no-content", "no-key", "long-key", "long-actor"],
)
@pytest.mark.asyncio
async def test_invalid_command_touches_nothing(db, command):
    uow = FakeUoW(db)

    with pytest.raises(ValidationError):
        await newsletter_service.publish_newsletter(command, uow)

    assert db.idempotency == {}
    assert db.enumerations == 0
    assert uow.commits == 0


@pytest.mark.asyncio
async def test_html_only_newsletter_is_valid(db):
    response = await newsletter_service.publish_newsletter(make_command(text=None), FakeUoW(db))

    assert response.status_code == 202


@pytest.mark.asyncio
async def test_workers_are_woken_after_enqueue(db):
    publisher = FakePublisher()

    await newsletter_service.publish_newsletter(
        make_command(), FakeUoW(db), publisher=publisher, wakeup_channel="wake",
    )

    assert len(publisher.published) == 1
    channel, payload = publisher.published[0]
    assert channel == "wake"
    assert payload["event_type"] == "delivery.enqueued"
    assert payload["task_count"] == 1


@pytest.mark.asyncio
async def test_no_wakeup_without_tasks():
    publisher = FakePublisher()

    await newsletter_service.publish_newsletter(
        make_command(), FakeUoW(FakeDatabase()), publisher=publisher, wakeup_channel="wake",
    )

    assert publisher.published == []


@pytest.mark.asyncio
async def test_wakeup_failure_does_not_fail_request(db):
    response = await newsletter_service.publish_newsletter(
        make_command(), FakeUoW(db), publisher=FakePublisher(fail=True), wakeup_channel="wake",
    )

    assert response.status_code == 202
    assert len(db.tasks) == 1


def test_accepted_response_is_deterministic():
    assert accepted_response() == accepted_response()
    assert accepted_response().headers == [("content-type", "application/json")]
