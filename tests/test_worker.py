"""Worker handlers run against the same process-wide store the API uses."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import timedelta
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from exam_service import worker
from exam_service.api import dependencies
from exam_service.models.question import Option
from exam_service.services import statistics
from exam_service.services.attempt_service import start_attempt, submit_attempt
from exam_service.services.cache import cache_service
from exam_service.services.task_queue import (
    NOTIFICATIONS_QUEUE,
    RECALCULATION_DEAD_LETTER,
    RECALCULATION_QUEUE,
    task_queue,
)
from tests.conftest import INSTRUCTOR, NOW, STUDENT, seed_exam, single_choice


async def _answered_wrong():
    """STUDENT answers "b" on a question keyed "a", then the key is edited in place."""
    store = dependencies._memory_store
    exam, (q,) = await seed_exam(store, [single_choice(5, "a")])
    attempt = await start_attempt(store, exam.id, STUDENT, NOW)
    await submit_attempt(
        store, attempt.id, STUDENT, {q.id: "b"}, now=NOW + timedelta(minutes=5)
    )
    rekeyed = replace(
        q,
        options=tuple(Option(id=o.id, text=o.text, is_correct=o.id == "b") for o in q.options),
    )
    await store.questions.save(rekeyed)
    return store, exam, q


def test_handle_recalculation_rescores_results() -> None:
    async def scenario():
        store, exam, q = await _answered_wrong()
        await statistics.exam_statistics(store, exam.id, INSTRUCTOR)
        await worker.handle_recalculation({"question_id": str(q.id)})
        results = await store.results.list_by_exam(exam.id)
        cached = await cache_service.get(statistics.exam_key(exam.id))
        return results, cached

    results, cached = asyncio.run(scenario())
    assert results[0].obtained_marks == 5
    assert results[0].grade == "A+"
    assert cached is None


def test_handle_recalculation_skips_deleted_question(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="exam_service.worker"):
        asyncio.run(worker.handle_recalculation({"question_id": str(uuid4())}))
    assert "no longer exists" in caplog.text


def test_run_once_dispatches_queued_task() -> None:
    async def scenario():
        store, exam, q = await _answered_wrong()
        await task_queue.enqueue(RECALCULATION_QUEUE, {"question_id": str(q.id)})
        taken = await worker.run_once(RECALCULATION_QUEUE, timeout=0)
        idle = await worker.run_once(RECALCULATION_QUEUE, timeout=0)
        return taken, idle, await store.attempts.list_by_exam(exam.id)

    taken, idle, attempts = asyncio.run(scenario())
    assert taken is True
    assert idle is False
    assert attempts[0].total_marks == 5


def test_failed_recalculation_is_requeued_and_then_succeeds(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls = []
    recalculate = worker.on_question_key_changed

    async def fails_once(store, question):
        calls.append(question.id)
        if len(calls) == 1:
            raise ConnectionError("database went away")
        return await recalculate(store, question)

    monkeypatch.setattr(worker, "on_question_key_changed", fails_once)

    async def scenario():
        store, exam, q = await _answered_wrong()
        await task_queue.enqueue(RECALCULATION_QUEUE, {"question_id": str(q.id)})
        await worker.run_once(RECALCULATION_QUEUE, timeout=0)
        requeued = task_queue._queues[RECALCULATION_QUEUE][0]
        await worker.run_once(RECALCULATION_QUEUE, timeout=0)
        results = await store.results.list_by_exam(exam.id)
        return requeued, results, await task_queue.queue_length(RECALCULATION_QUEUE)

    requeued, results, remaining = asyncio.run(scenario())
    assert len(calls) == 2
    assert requeued.payload["attempts"] == 1
    assert remaining == 0
    assert results[0].obtained_marks == 5


def test_recalculation_that_keeps_failing_is_dead_lettered(
    caplog: pytest.LogCaptureFixture,
) -> None:
    async def scenario():
        await task_queue.enqueue(RECALCULATION_QUEUE, {"question_id": "not-a-uuid"})
        lengths = []
        for _ in range(worker.MAX_TASK_ATTEMPTS):
            assert await worker.run_once(RECALCULATION_QUEUE, timeout=0) is True
            lengths.append(await task_queue.queue_length(RECALCULATION_QUEUE))
        parked = await task_queue.dequeue(RECALCULATION_DEAD_LETTER)
        return lengths, parked

    with caplog.at_level(logging.WARNING, logger="exam_service.worker"):
        lengths, parked = asyncio.run(scenario())
    assert lengths == [1, 1, 0]
    assert parked is not None
    assert parked.payload["question_id"] == "not-a-uuid"
    assert parked.payload["attempts"] == worker.MAX_TASK_ATTEMPTS
    assert "failed_task_id" in parked.payload
    assert "requeued" in caplog.text
    assert f"moved to [{RECALCULATION_DEAD_LETTER}]" in caplog.text


def test_failed_notification_is_dropped(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    async def boom(payload: dict) -> None:
        raise RuntimeError("mail relay down")

    monkeypatch.setitem(worker.HANDLERS, NOTIFICATIONS_QUEUE, boom)
    before = REGISTRY.get_sample_value(
        "task_failures_total", {"queue_name": NOTIFICATIONS_QUEUE, "outcome": "dropped"}
    ) or 0.0

    async def scenario():
        await task_queue.enqueue(NOTIFICATIONS_QUEUE, {"event": "result_released"})
        taken = await worker.run_once(NOTIFICATIONS_QUEUE, timeout=0)
        return taken, await task_queue.queue_length(NOTIFICATIONS_QUEUE)

    with caplog.at_level(logging.ERROR, logger="exam_service.worker"):
        taken, remaining = asyncio.run(scenario())
    after = REGISTRY.get_sample_value(
        "task_failures_total", {"queue_name": NOTIFICATIONS_QUEUE, "outcome": "dropped"}
    )
    assert taken is True
    assert remaining == 0
    assert after - before == 1
    assert "failed" in caplog.text


def test_handle_notification_logs_event(caplog: pytest.LogCaptureFixture) -> None:
    exam_id = str(uuid4())
    with caplog.at_level(logging.INFO, logger="exam_service.worker"):
        asyncio.run(
            worker.handle_notification(
                {"event": "result_released", "exam_id": exam_id, "student_id": "student-1"}
            )
        )
    record = next(r for r in caplog.records if r.getMessage().startswith("Event"))
    assert "result_released" in record.getMessage()
    assert "student_id=student-1" in record.getMessage()
    assert record.exam_id == exam_id


def test_every_queue_has_a_handler() -> None:
    assert set(worker.HANDLERS) == {NOTIFICATIONS_QUEUE, RECALCULATION_QUEUE}
