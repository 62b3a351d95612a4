"""Background worker process.

RUN:  python -m exam_service.worker

Same image as the API, different command:
  api:    uvicorn exam_service.main:app --host 0.0.0.0 --port 8000
  worker: python -m exam_service.worker

The loop polls each registered queue in turn, dispatches one task at a
time to its handler, and logs the outcome.  A failing recalculation task
goes back on its queue with an "attempts" count in the payload; after
MAX_TASK_ATTEMPTS failures it is parked on the dead-letter queue, from
which nothing reads automatically.  Recalculation is idempotent, so
replaying a task that half-succeeded is safe.  Failing notification tasks
are logged and dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from functools import partial
from typing import Any
from uuid import UUID

from exam_service.api.dependencies import store_for
from exam_service.core.config import SETTINGS
from exam_service.core.logging import setup_logging
from exam_service.core.metrics import QUEUE_DEPTH, TASK_FAILURES
from exam_service.db.engine import unit_of_work
from exam_service.services import statistics
from exam_service.services.recalculation import on_question_key_changed
from exam_service.services.task_queue import (
    NOTIFICATIONS_QUEUE,
    RECALCULATION_DEAD_LETTER,
    RECALCULATION_QUEUE,
    Task,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("exam_service.worker")

MAX_TASK_ATTEMPTS = 3

# Queues whose failed tasks are retried, mapped to their dead-letter queue.
DEAD_LETTERS: dict[str, str] = {RECALCULATION_QUEUE: RECALCULATION_DEAD_LETTER}


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(NOTIFICATIONS_QUEUE)
async def handle_notification(payload: dict) -> None:
    """Deliver a domain event.

    Delivery channels (email, push) are outside this service; the event is
    logged with its ids so downstream log shipping can pick it up.
    """
    event = payload.get("event", "unknown")
    details = {k: v for k, v in payload.items() if k != "event"}
    logger.info(
        "Event %s %s",
        event,
        " ".join(f"{k}={v}" for k, v in sorted(details.items())),
        extra={k: v for k, v in details.items() if k in ("exam_id", "attempt_id")},
    )


@register_handler(RECALCULATION_QUEUE)
async def handle_recalculation(payload: dict) -> None:
    question_id = UUID(payload["question_id"])
    async with unit_of_work() as uow:
        store = store_for(uow)
        question = await store.questions.get(question_id)
        if question is None:
            logger.warning("Recalculation skipped: question=%s no longer exists", question_id)
            return
        report = await on_question_key_changed(store, question)
        uow.after_commit(partial(statistics.invalidate, question.exam_id))
    logger.info(
        "Recalculation task finished question=%s records=%d", question_id, report.total
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def run_once(queue_name: str, timeout: int = 1) -> bool:
    """Process at most one task from `queue_name`; True if one was taken."""
    task = await task_queue.dequeue(queue_name, timeout=timeout)
    QUEUE_DEPTH.labels(queue_name=queue_name).set(await task_queue.queue_length(queue_name))
    if task is None:
        return False

    handler = HANDLERS[queue_name]
    try:
        await handler(task.payload)
        logger.info("Task %s on [%s] completed", task.id, queue_name)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, queue_name)
        await _after_failure(queue_name, task)
    return True


async def _after_failure(queue_name: str, task: Task) -> None:
    dead_letter = DEAD_LETTERS.get(queue_name)
    if dead_letter is None:
        TASK_FAILURES.labels(queue_name=queue_name, outcome="dropped").inc()
        return

    attempts = int(task.payload.get("attempts", 0)) + 1
    payload = {**task.payload, "attempts": attempts}
    if attempts < MAX_TASK_ATTEMPTS:
        retry = await task_queue.enqueue(queue_name, payload)
        TASK_FAILURES.labels(queue_name=queue_name, outcome="requeued").inc()
        logger.warning(
            "Task %s on [%s] requeued as %s after %d of %d attempts",
            task.id,
            queue_name,
            retry.id,
            attempts,
            MAX_TASK_ATTEMPTS,
        )
        return

    await task_queue.enqueue(dead_letter, {**payload, "failed_task_id": task.id})
    TASK_FAILURES.labels(queue_name=queue_name, outcome="dead_lettered").inc()
    logger.error(
        "Task %s on [%s] moved to [%s] after %d attempts",
        task.id,
        queue_name,
        dead_letter,
        attempts,
    )


async def run_worker() -> None:
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)
    while True:
        taken = [await run_once(queue_name) for queue_name in queues]
        if not any(taken):
            # The in-memory queue returns at once instead of blocking.
            await asyncio.sleep(0.1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
