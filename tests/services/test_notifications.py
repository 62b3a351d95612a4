from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from exam_service.db.engine import unit_of_work
from exam_service.services.notifications import DeferredEventSink, QueueEventSink, notify
from exam_service.services.task_queue import NOTIFICATIONS_QUEUE, InMemoryTaskQueue


class BrokenSink:
    async def publish(self, event: str, payload: dict) -> None:
        raise ConnectionError("broker unreachable")


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    async def publish(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))


def _failures(event: str) -> float:
    value = REGISTRY.get_sample_value(
        "exam_notification_failures_total", {"event": event}
    )
    return value if value is not None else 0.0


def test_publish_failure_is_counted_and_swallowed() -> None:
    before = _failures("result_released")
    asyncio.run(notify(BrokenSink(), "result_released", result_id=uuid4()))
    assert _failures("result_released") - before == 1


def test_payload_values_are_stringified() -> None:
    sink = RecordingSink()
    attempt_id = uuid4()
    asyncio.run(notify(sink, "attempt_submitted", attempt_id=attempt_id, note=None))
    assert sink.events == [
        ("attempt_submitted", {"attempt_id": str(attempt_id), "note": None})
    ]


def test_no_sink_is_a_no_op() -> None:
    asyncio.run(notify(None, "attempt_submitted", attempt_id=uuid4()))


def test_queue_sink_enqueues_on_notifications_queue() -> None:
    queue = InMemoryTaskQueue()
    exam_id = uuid4()

    async def scenario():
        await notify(QueueEventSink(queue), "project_submitted", exam_id=exam_id)
        return await queue.dequeue(NOTIFICATIONS_QUEUE)

    task = asyncio.run(scenario())
    assert task is not None
    assert task.queue == NOTIFICATIONS_QUEUE
    assert task.payload == {"event": "project_submitted", "exam_id": str(exam_id)}


def test_deferred_sink_publishes_only_after_commit() -> None:
    sink = RecordingSink()

    async def scenario():
        async with unit_of_work() as uow:
            await notify(DeferredEventSink(sink, uow.after_commit), "essay_graded", n=1)
            pending = list(sink.events)
        return pending

    pending = asyncio.run(scenario())
    assert pending == []
    assert sink.events == [("essay_graded", {"n": "1"})]


def test_deferred_sink_drops_events_on_rollback() -> None:
    sink = RecordingSink()

    async def scenario():
        async with unit_of_work() as uow:
            await notify(DeferredEventSink(sink, uow.after_commit), "result_released")
            raise RuntimeError("write failed")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert sink.events == []


def test_deferred_publish_failure_is_counted() -> None:
    before = _failures("project_graded")

    async def scenario():
        async with unit_of_work() as uow:
            await notify(DeferredEventSink(BrokenSink(), uow.after_commit), "project_graded")

    asyncio.run(scenario())
    assert _failures("project_graded") - before == 1
