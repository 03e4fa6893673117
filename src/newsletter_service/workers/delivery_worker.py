"""Delivery worker: drains the issue delivery queue through the email transport."""
from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, AsyncIterator, Callable

import redis.asyncio as aioredis

from newsletter_service.application.ports.clock import Clock, SystemClock
from newsletter_service.application.ports.email import (
    EmailTransport,
    PermanentTransportError,
    TransientTransportError,
    TransportError,
)
from newsletter_service.application.repositories.outbox import DeliveryTaskRecord
from newsletter_service.application.uow import UnitOfWork
from newsletter_service.config import settings
from newsletter_service.domain.value_objects.enums import DeliveryOutcome
from newsletter_service.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from newsletter_service.infrastructure.db.session import AsyncSessionLocal
from newsletter_service.infrastructure.db.uow import SqlAlchemyUoW
from newsletter_service.infrastructure.email.http_client import HttpEmailClient

logger = logging.getLogger(__name__)

UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 5.0
    max_delay: float = 3600.0
    attempt_timeout: float = 10.0


def calc_backoff(
    attempt: int,
    policy: RetryPolicy,
    rng: Callable[[], float] = random.random,
) -> timedelta:
    """Delay to wait after the ``attempt``-th failed attempt (1-based).

    Exponential with up to +50% jitter: attempt n lands in [d, 1.5d) while
    attempt n+1 starts at 2d, so delays strictly increase until max_delay.
    """
    delay = min(policy.base_delay * (2 ** (attempt - 1)), policy.max_delay)
    return timedelta(seconds=delay + delay * 0.5 * rng())


class DeliveryWorker:
    def __init__(
        self,
        uow_factory: UoWFactory,
        transport: EmailTransport,
        *,
        policy: RetryPolicy = RetryPolicy(),
        batch_size: int = 20,
        poll_interval: float = 1.0,
        clock: Clock | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._transport = transport
        self._policy = policy
        self._batch_size = batch_size
        self._poll_interval = poll_interval
        self._clock = clock or SystemClock()
        self._wakeup = asyncio.Event()

    def wake_up(self) -> None:
        self._wakeup.set()

    async def run(self) -> None:
        while True:
            handled = 0
            try:
                handled = await self.process_batch()
            except Exception:
                logger.exception("Delivery worker loop error")
            # A full batch means more work is probably due; skip the sleep.
            if handled < self._batch_size:
                await self._idle()

    async def drain(self) -> int:
        """Process batches until nothing is due. Returns the number of tasks handled."""
        total = 0
        while True:
            handled = await self.process_batch()
            if handled == 0:
                return total
            total += handled

    async def process_batch(self) -> int:
        async with self._uow_factory() as uow:
            batch = await uow.outbox.dequeue_batch(self._clock.now(), self._batch_size)
            if not batch:
                await uow.rollback()
                return 0

            # Row locks are held for the whole batch; sends run concurrently
            # so one slow recipient does not hold up the rest.
            errors = await asyncio.gather(*(self._attempt(task) for task in batch))

            outcomes: Counter[DeliveryOutcome] = Counter()
            for task, error in zip(batch, errors):
                outcomes[await self._ack(uow, task, error)] += 1
            await uow.commit()

        logger.info(
            "Delivery batch done: sent=%d retry=%d dropped=%d",
            outcomes[DeliveryOutcome.SENT],
            outcomes[DeliveryOutcome.RETRY],
            outcomes[DeliveryOutcome.DROPPED],
        )
        return len(batch)

    async def _attempt(self, task: DeliveryTaskRecord) -> TransportError | None:
        try:
            await asyncio.wait_for(
                self._transport.send(
                    task.recipient_address,
                    task.title,
                    task.html_content or "",
                    task.text_content or "",
                ),
                timeout=self._policy.attempt_timeout,
            )
        except TransportError as exc:
            return exc
        except TimeoutError:
            return TransientTransportError(
                f"Attempt timed out after {self._policy.attempt_timeout:.1f}s"
            )
        except Exception as exc:
            logger.exception("Unexpected transport error for task %d", task.id)
            return TransientTransportError(f"Unexpected error: {exc!r}")
        return None

    async def _ack(
        self,
        uow: UnitOfWork,
        task: DeliveryTaskRecord,
        error: TransportError | None,
    ) -> DeliveryOutcome:
        if error is None:
            await uow.outbox.ack_success(task.id)
            return DeliveryOutcome.SENT

        attempts = task.attempt_count + 1
        if isinstance(error, PermanentTransportError):
            reason = f"permanent failure: {error}"
        elif attempts >= self._policy.max_attempts:
            reason = f"gave up after {attempts} attempts: {error}"
        else:
            next_attempt_at = self._clock.now() + calc_backoff(attempts, self._policy)
            await uow.outbox.ack_retry(task.id, next_attempt_at)
            logger.info(
                "Delivery task %d to %s failed (attempt %d/%d), retrying at %s: %s",
                task.id, task.recipient_address, attempts,
                self._policy.max_attempts, next_attempt_at.isoformat(), error,
            )
            return DeliveryOutcome.RETRY

        await uow.outbox.ack_drop(task.id, reason)
        logger.warning(
            "Dropped delivery task %d: issue=%s recipient=%s attempts=%d reason=%s",
            task.id, task.newsletter_issue_id, task.recipient_address, attempts, reason,
        )
        return DeliveryOutcome.DROPPED

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=self._poll_interval)
        except TimeoutError:
            pass
        self._wakeup.clear()


@asynccontextmanager
async def sqlalchemy_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow


async def run_delivery_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    transport = HttpEmailClient(
        settings.EMAIL_API_BASE_URL,
        settings.EMAIL_SENDER,
        settings.EMAIL_AUTH_TOKEN,
        settings.EMAIL_TIMEOUT_SECONDS,
    )
    worker = DeliveryWorker(
        sqlalchemy_uow,
        transport,
        policy=RetryPolicy(
            max_attempts=settings.DELIVERY_MAX_ATTEMPTS,
            base_delay=settings.DELIVERY_BACKOFF_BASE_SECONDS,
            max_delay=settings.DELIVERY_BACKOFF_MAX_SECONDS,
            attempt_timeout=settings.DELIVERY_ATTEMPT_TIMEOUT_SECONDS,
        ),
        batch_size=settings.DELIVERY_BATCH_SIZE,
        poll_interval=settings.DELIVERY_POLL_INTERVAL,
    )

    async def _on_wakeup(event_type: str, data: dict[str, Any]) -> None:
        logger.debug("Wake-up %s for issue %s", event_type, data.get("newsletter_issue_id"))
        worker.wake_up()

    subscriber = RedisPubSubSubscriber(redis, settings.DELIVERY_WAKEUP_CHANNEL, _on_wakeup)
    await subscriber.start()

    logger.info(
        "Delivery worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.DELIVERY_POLL_INTERVAL,
        settings.DELIVERY_BATCH_SIZE,
        settings.DELIVERY_MAX_ATTEMPTS,
    )

    try:
        await worker.run()
    finally:
        await subscriber.stop()
        await transport.aclose()
        await redis.aclose()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(run_delivery_worker())


if __name__ == "__main__":
    main()
