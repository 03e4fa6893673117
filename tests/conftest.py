"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any
from uuid import UUID, uuid4

import pytest

from newsletter_service.application.dto.principal import Principal
from newsletter_service.application.exceptions import IdempotencyFinalizeError
from newsletter_service.application.repositories.idempotency import BeginResult, BeginStatus
from newsletter_service.application.repositories.outbox import DeliveryTaskRecord
from newsletter_service.domain.entities.delivery_task import DeliveryTask
from newsletter_service.domain.entities.idempotency_record import (
    IdempotencyRecord,
    SavedResponse,
)
from newsletter_service.domain.entities.newsletter_issue import NewsletterIssue
from newsletter_service.domain.value_objects.enums import SubscriptionStatus


@pytest.fixture
def principal() -> Principal:
    return Principal(subject_id="admin-42", roles=["admin"])


@dataclass
class FakeClock:
    current: datetime = field(default_factory=lambda: datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class FakeDatabase:
    """State shared by every FakeUoW, standing in for Postgres."""

    idempotency: dict[tuple[str, str], IdempotencyRecord] = field(default_factory=dict)
    issues: dict[UUID, NewsletterIssue] = field(default_factory=dict)
    subscriptions: list[tuple[str, SubscriptionStatus]] = field(default_factory=list)
    tasks: dict[int, DeliveryTask] = field(default_factory=dict)
    failures: list[dict[str, Any]] = field(default_factory=list)
    locked: set[int] = field(default_factory=set)
    enumerations: int = 0
    enumeration_delay: float = 0.0
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def subscribe(self, email: str, status: SubscriptionStatus = SubscriptionStatus.CONFIRMED) -> None:
        self.subscriptions.append((email, status))


def seed_issue(db: FakeDatabase, clock: FakeClock, *recipients: str) -> UUID:
    """Store an issue with one due delivery task per recipient."""
    issue = NewsletterIssue(
        id=uuid4(),
        title="Weekly digest",
        text_content="Plain body",
        html_content="<p>Html body</p>",
        created_at=clock.now(),
    )
    db.issues[issue.id] = issue
    for recipient in recipients:
        task_id = next(db._ids)
        db.tasks[task_id] = DeliveryTask(
            id=task_id,
            newsletter_issue_id=issue.id,
            recipient_address=recipient,
            enqueued_at=clock.now(),
            next_attempt_at=clock.now(),
        )
    return issue.id


@dataclass
class FakeIdempotencyStore:
    _uow: FakeUoW

    async def begin(self, actor_id: str, key: str) -> BeginResult:
        db = self._uow.db
        existing = db.idempotency.get((actor_id, key))
        if existing is not None:
            if existing.response is not None:
                return BeginResult(BeginStatus.FINALIZED, existing.response)
            return BeginResult(BeginStatus.IN_PROGRESS)
        db.idempotency[(actor_id, key)] = IdempotencyRecord(
            actor_id=actor_id,
            idempotency_key=key,
            created_at=datetime.now(timezone.utc),
        )
        self._uow._reserved.append((actor_id, key))
        return BeginResult(BeginStatus.STARTED)

    async def finalize(self, actor_id: str, key: str, response: SavedResponse) -> None:
        record = self._uow.db.idempotency.get((actor_id, key))
        if record is None or record.response is not None:
            raise IdempotencyFinalizeError(f"cannot finalize {actor_id}/{key}")
        self._uow._finalized.append(replace(record, response=response))

    async def load(self, actor_id: str, key: str) -> IdempotencyRecord | None:
        return self._uow.db.idempotency.get((actor_id, key))


@dataclass
class FakeNewsletterIssueWriter:
    _uow: FakeUoW

    async def create(self, issue: NewsletterIssue) -> NewsletterIssue:
        self._uow._issues.append(issue)
        return issue


@dataclass
class FakeSubscriberDirectory:
    _uow: FakeUoW

    async def list_confirmed_addresses(self) -> list[str]:
        db = self._uow.db
        db.enumerations += 1
        if db.enumeration_delay:
            await asyncio.sleep(db.enumeration_delay)
        return [email for email, status in db.subscriptions if status == SubscriptionStatus.CONFIRMED]


@dataclass
class FakeOutbox:
    _uow: FakeUoW

    async def enqueue_many(self, tasks: list[DeliveryTask]) -> None:
        self._uow._tasks.extend(tasks)

    async def dequeue_batch(self, now: datetime, limit: int) -> list[DeliveryTaskRecord]:
        db = self._uow.db
        due = sorted(
            (t for t in db.tasks.values() if t.next_attempt_at <= now and t.id not in db.locked),
            key=lambda t: (t.next_attempt_at, t.id),
        )[:limit]
        records = []
        for task in due:
            assert task.id is not None
            db.locked.add(task.id)
            self._uow._locked.add(task.id)
            issue = db.issues[task.newsletter_issue_id]
            records.append(
                DeliveryTaskRecord(
                    id=task.id,
                    newsletter_issue_id=task.newsletter_issue_id,
                    recipient_address=task.recipient_address,
                    attempt_count=task.attempt_count,
                    title=issue.title,
                    text_content=issue.text_content,
                    html_content=issue.html_content,
                )
            )
        return records

    async def ack_success(self, task_id: int) -> None:
        self._uow.db.tasks.pop(task_id, None)

    async def ack_retry(self, task_id: int, next_attempt_at: datetime) -> None:
        db = self._uow.db
        task = db.tasks[task_id]
        db.tasks[task_id] = replace(
            task,
            attempt_count=task.attempt_count + 1,
            next_attempt_at=next_attempt_at,
        )

    async def ack_drop(self, task_id: int, reason: str) -> None:
        task = self._uow.db.tasks.pop(task_id)
        self._uow.db.failures.append(
            {
                "task_id": task_id,
                "newsletter_issue_id": task.newsletter_issue_id,
                "recipient_address": task.recipient_address,
                "attempts": task.attempt_count + 1,
                "reason": reason,
            }
        )


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests.

    Reservations become visible to other units of work immediately, like an
    uncommitted row behind a unique index; everything else is applied on commit.
    """

    db: FakeDatabase = field(default_factory=FakeDatabase)
    commits: int = 0
    _reserved: list[tuple[str, str]] = field(default_factory=list)
    _finalized: list[IdempotencyRecord] = field(default_factory=list)
    _issues: list[NewsletterIssue] = field(default_factory=list)
    _tasks: list[DeliveryTask] = field(default_factory=list)
    _locked: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.idempotency = FakeIdempotencyStore(self)
        self.issues_w = FakeNewsletterIssueWriter(self)
        self.subscribers = FakeSubscriberDirectory(self)
        self.outbox = FakeOutbox(self)

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        for issue in self._issues:
            self.db.issues[issue.id] = issue
        for task in self._tasks:
            task_id = next(self.db._ids)
            self.db.tasks[task_id] = replace(task, id=task_id)
        for record in self._finalized:
            self.db.idempotency[(record.actor_id, record.idempotency_key)] = record
        self._reset()
        self.commits += 1

    async def rollback(self) -> None:
        for key in self._reserved:
            self.db.idempotency.pop(key, None)
        self._reset()

    def _reset(self) -> None:
        self._reserved.clear()
        self._finalized.clear()
        self._issues.clear()
        self._tasks.clear()
        self.db.locked -= self._locked
        self._locked.clear()

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()


def uow_factory(db: FakeDatabase):
    """Build a worker-style factory returning a fresh FakeUoW per batch."""

    def _factory() -> FakeUoW:
        return FakeUoW(db)

    return _factory


@dataclass
class FakeTransport:
    """Records send() calls. ``failures`` maps recipient -> exceptions raised in order."""

    failures: dict[str, list[Exception]] = field(default_factory=dict)
    delay: float = 0.0
    calls: list[dict[str, str]] = field(default_factory=list)
    delivered: list[str] = field(default_factory=list)

    async def send(self, recipient: str, subject: str, html_body: str, text_body: str) -> None:
        self.calls.append(
            {"recipient": recipient, "subject": subject, "html": html_body, "text": text_body}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        pending = self.failures.get(recipient)
        if pending:
            raise pending.pop(0)
        self.delivered.append(recipient)


@dataclass
class FakePublisher:
    published: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("redis is down")
        self.published.append((channel, payload))
