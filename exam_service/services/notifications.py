"""Fire-and-forget domain events.

The scoring engine announces what happened (attempt_submitted,
essay_graded, project_submitted, project_graded, result_released) and
moves on.  Delivering anything to a human is the worker's job, and a
failure to hand an event over must never undo or fail the write that
produced it: notify() logs, counts and swallows.

Inside a request the sink is a DeferredEventSink, so events leave the
process only after the unit of work that produced them has committed.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from functools import partial
from typing import Any, Protocol

from exam_service.core.metrics import NOTIFICATION_FAILURES
from exam_service.services.task_queue import NOTIFICATIONS_QUEUE, TaskQueue, task_queue

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    async def publish(self, event: str, payload: dict[str, Any]) -> None: ...


class QueueEventSink:
    """Pushes events onto the notifications task queue."""

    def __init__(self, queue: TaskQueue | None = None) -> None:
        self._queue = queue if queue is not None else task_queue

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        task = await self._queue.enqueue(
            NOTIFICATIONS_QUEUE, {"event": event, **payload}
        )
        logger.debug("Queued event=%s task=%s", event, task.id)


class DeferredEventSink:
    """Queues each delivery through `defer` (a UnitOfWork's after_commit)."""

    def __init__(
        self, sink: EventSink, defer: Callable[[Callable[[], Awaitable[None]]], None]
    ) -> None:
        self._sink = sink
        self._defer = defer

    async def publish(self, event: str, payload: dict[str, Any]) -> None:
        self._defer(partial(_deliver, self._sink, event, payload))


async def notify(sink: EventSink | None, event: str, **payload: Any) -> None:
    if sink is None:
        return
    body = {k: str(v) if v is not None else None for k, v in payload.items()}
    await _deliver(sink, event, body)


async def _deliver(sink: EventSink, event: str, body: dict[str, Any]) -> None:
    try:
        await sink.publish(event, body)
    except Exception:
        NOTIFICATION_FAILURES.labels(event=event).inc()
        logger.exception("Could not publish event=%s", event)
