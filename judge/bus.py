"""
Event bus for the execution engine, backed by Redis pub/sub.

``EventBus`` does the actual publishing. ``EventPublisher`` sits in front of
it with a bounded queue so job code never waits on (or fails because of)
event delivery: a full queue drops the event.
"""
import asyncio
import contextlib
import json
import logging
from typing import Final

import redis.asyncio as redis

from judge.config import EventSettings, get_settings
from judge.events import SessionUpdateEvent, SubmissionUpdateEvent
from judge.metrics import EVENTS_DROPPED

logger = logging.getLogger(__name__)

KIND_SESSION: Final[str] = "session"
KIND_SUBMISSION: Final[str] = "submission"


class EventBus:
    def __init__(self, redis_client: redis.Redis, settings: EventSettings | None = None):
        self.redis_client = redis_client
        self.settings = settings or get_settings().events

    @property
    def session_channel(self) -> str:
        return self.settings.session_channel

    def user_channel(self, user_id: str) -> str:
        return f"{self.settings.user_channel_prefix}{user_id}"

    async def publish_session(self, event: SessionUpdateEvent) -> None:
        await self.redis_client.publish(self.session_channel, json.dumps(event))

    async def publish_to_user(self, user_id: str, submission_id: str, status: str) -> None:
        payload: SubmissionUpdateEvent = {
            "event": self.settings.submission_event,
            "submissionId": submission_id,
            "status": status,
        }
        await self.redis_client.publish(self.user_channel(user_id), json.dumps(payload))


class EventPublisher:
    def __init__(self, bus: EventBus, queue_size: int = 1000):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def publish_session(self, event: SessionUpdateEvent) -> bool:
        return self._offer((KIND_SESSION, event))

    def publish_submission(self, user_id: str, submission_id: str, status: str) -> bool:
        return self._offer((KIND_SUBMISSION, (user_id, submission_id, status)))

    def _offer(self, item: tuple) -> bool:
        try:
            self._queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            EVENTS_DROPPED.inc()
            logger.debug("event queue full; dropping %s event", item[0])
            return False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._drain(), name="judge-event-publisher")

    async def flush(self) -> None:
        await self._queue.join()

    async def stop(self, timeout: float = 5.0) -> None:
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("event publisher stopped with %d undelivered events", self._queue.qsize())
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _drain(self) -> None:
        while True:
            kind, payload = await self._queue.get()
            try:
                if kind == KIND_SESSION:
                    await self._bus.publish_session(payload)
                else:
                    await self._bus.publish_to_user(*payload)
            except Exception as e:
                logger.warning("event publish failed (%s): %s", kind, e)
            finally:
                self._queue.task_done()
