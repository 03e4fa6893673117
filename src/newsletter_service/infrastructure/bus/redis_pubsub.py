"""Redis Pub/Sub wake-up signal between the command processor and delivery workers.

Messages are hints only: a lost message just means workers pick the tasks
up on their next poll.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


def encode_event(payload: dict[str, Any]) -> str:
    envelope = {"event": payload.get("event_type", "unknown"), "data": payload}
    return json.dumps(envelope, default=str)


def decode_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    envelope = json.loads(raw)
    return envelope["event"], envelope["data"]


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        receivers = await self._redis.publish(channel, encode_event(payload))
        logger.debug("Published %s to %s (%d listeners)", payload.get("event_type"), channel, receivers)


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches events.

    Resubscribes after any Redis error so a Redis restart does not leave the
    worker deaf until it is restarted itself.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
        *,
        reconnect_delay: float = 5.0,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="delivery-wakeup-subscriber")
        logger.info("Listening for delivery wake-ups on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Wake-up subscriber stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except aioredis.RedisError as exc:
                logger.warning(
                    "Redis subscription on %s failed (%r), retrying in %.0fs",
                    self._channel, exc, self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    event_type, data = decode_event(message["data"])
                    await self._callback(event_type, data)
                except Exception:
                    logger.exception("Error processing wake-up message")
        finally:
            await pubsub.aclose()
