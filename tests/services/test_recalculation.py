"""Answer-key changes re-score every record that used the old key."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import uuid4

from prometheus_client import REGISTRY

from exam_service.models.exam import ExamType
from exam_service.models.question import Option, Question
from exam_service.models.result import ResultStatus
from exam_service.models.submission import ManualAnswer
from exam_service.repos.store import ExamStore
from exam_service.services import question_service
from exam_service.services.attempt_service import (
    grade_essay_answer,
    start_attempt,
    submit_attempt,
)
from exam_service.services.recalculation import (
    on_question_key_changed,
    schedule_recalculation,
)
from exam_service.services.task_queue import RECALCULATION_QUEUE, InMemoryTaskQueue
from tests.conftest import (
    INSTRUCTOR,
    NOW,
    OTHER_STUDENT,
    STUDENT,
    essay,
    seed_exam,
    single_choice,
    true_false,
)

LATER = NOW + timedelta(minutes=10)


def _flag(question: Question, correct: str) -> list[Option]:
    return [
        Option(id=o.id, text=o.text, is_correct=o.id == correct) for o in question.options
    ]


async def _two_students(store: ExamStore):
    """q1 keyed "a": STUDENT picks b (wrong), OTHER_STUDENT picks a (right)."""
    exam, (q1, q2) = await seed_exam(store, [single_choice(5, "a"), single_choice(5, "a")])
    for principal, pick in ((STUDENT, "b"), (OTHER_STUDENT, "a")):
        attempt = await start_attempt(store, exam.id, principal, NOW)
        await submit_attempt(
            store, attempt.id, principal, {q1.id: pick, q2.id: "a"}, now=LATER
        )
    return exam, q1, q2


async def _snapshot(store: ExamStore, exam_id):
    attempts = {a.student_id: a for a in await store.attempts.list_by_exam(exam_id)}
    submissions = {s.student_id: s for s in await store.submissions.list_by_exam(exam_id)}
    results = {r.student_id: r for r in await store.results.list_by_exam(exam_id)}
    return attempts, submissions, results


def test_key_change_rescores_attempts_submissions_and_results(store: ExamStore) -> None:
    async def scenario():
        exam, q1, _ = await _two_students(store)
        update = await question_service.update_question(
            store, q1.id, INSTRUCTOR, options=_flag(q1, "b")
        )
        return update, q1, await _snapshot(store, exam.id)

    update, q1, (attempts, submissions, results) = asyncio.run(scenario())

    assert update.key_changed is True
    assert update.recalculation is not None
    assert update.recalculation.attempts == 2
    assert update.recalculation.submissions == 2
    assert update.recalculation.results == 2

    # STUDENT's "b" is now right, OTHER_STUDENT's "a" is now wrong.
    assert attempts[STUDENT.user_id].total_marks == 10
    assert attempts[OTHER_STUDENT.user_id].total_marks == 5
    assert submissions[STUDENT.user_id].total_marks_obtained == 10
    assert submissions[OTHER_STUDENT.user_id].total_marks_obtained == 5
    assert submissions[STUDENT.user_id].answer_for(q1.id).is_correct is True

    mine = results[STUDENT.user_id]
    assert mine.obtained_marks == 10
    assert mine.percentage == 100
    assert mine.grade == "A+"
    assert mine.status is ResultStatus.PASS
    assert mine.analytics.correct_answers == 2
    assert mine.analytics.incorrect_answers == 0
    q1_row = next(qr for qr in mine.question_results if qr.question_id == q1.id)
    assert q1_row.obtained_marks == 5 and q1_row.is_correct is True

    theirs = results[OTHER_STUDENT.user_id]
    assert theirs.obtained_marks == 5
    assert theirs.percentage == 50
    assert theirs.grade == "D"


def test_recalculation_is_idempotent(store: ExamStore) -> None:
    async def scenario():
        exam, q1, _ = await _two_students(store)
        await question_service.update_question(
            store, q1.id, INSTRUCTOR, options=_flag(q1, "b")
        )
        converged = await _snapshot(store, exam.id)
        again = await question_service.recalculate_question(store, q1.id, INSTRUCTOR)
        return converged, again, await _snapshot(store, exam.id)

    converged, again, after = asyncio.run(scenario())
    assert again.total == 0
    assert after == converged


def test_recalculation_counts_rewritten_records() -> None:
    store = ExamStore.in_memory()
    before = REGISTRY.get_sample_value(
        "exam_recalculated_records_total", {"kind": "result"}
    ) or 0.0

    async def scenario():
        _, q1, _ = await _two_students(store)
        await question_service.update_question(
            store, q1.id, INSTRUCTOR, options=_flag(q1, "c")
        )

    asyncio.run(scenario())
    after = REGISTRY.get_sample_value("exam_recalculated_records_total", {"kind": "result"})
    # Only OTHER_STUDENT's result changes: nobody picked "c", STUDENT was already wrong.
    assert after - before == 1


def test_points_only_edit_does_not_recalculate(store: ExamStore) -> None:
    async def scenario():
        exam, q1, _ = await _two_students(store)
        before = await _snapshot(store, exam.id)
        update = await question_service.update_question(store, q1.id, INSTRUCTOR, points=8)
        return update, before, await _snapshot(store, exam.id)

    update, before, after = asyncio.run(scenario())
    assert update.key_changed is False
    assert update.recalculation is None
    assert update.question.points == 8
    assert after == before


def test_key_and_points_edited_together_rescore_against_new_total(
    store: ExamStore,
) -> None:
    async def scenario():
        exam, q1, _ = await _two_students(store)
        await question_service.update_question(
            store, q1.id, INSTRUCTOR, options=_flag(q1, "b"), points=10
        )
        return q1, await _snapshot(store, exam.id)

    q1, (attempts, submissions, results) = asyncio.run(scenario())

    # STUDENT: q1 "b" now right at 10 points, q2 right at 5.
    assert attempts[STUDENT.user_id].total_marks == 15
    assert submissions[STUDENT.user_id].total_marks_obtained == 15
    mine = results[STUDENT.user_id]
    assert mine.total_marks == 20
    assert mine.obtained_marks == 15
    assert mine.percentage == 75
    assert mine.grade == "B+"
    assert mine.obtained_marks == sum(qr.obtained_marks for qr in mine.question_results)
    q1_row = next(qr for qr in mine.question_results if qr.question_id == q1.id)
    assert q1_row.total_marks == 10 and q1_row.obtained_marks == 10

    theirs = results[OTHER_STUDENT.user_id]
    assert theirs.total_marks == 20
    assert theirs.obtained_marks == 5
    assert theirs.percentage == 25
    assert theirs.grade == "F"


def test_true_false_key_flip_is_recalculated(store: ExamStore) -> None:
    async def scenario():
        exam, (q,) = await seed_exam(store, [true_false(4, "true")])
        attempt = await start_attempt(store, exam.id, STUDENT, NOW)
        await submit_attempt(store, attempt.id, STUDENT, {q.id: "false"}, now=LATER)
        update = await question_service.update_question(
            store, q.id, INSTRUCTOR, correct_answer="False"
        )
        return update, await _snapshot(store, exam.id)

    update, (attempts, submissions, results) = asyncio.run(scenario())
    assert update.key_changed is True
    assert update.question.correct_answer == "false"
    assert attempts[STUDENT.user_id].total_marks == 4
    assert submissions[STUDENT.user_id].total_marks_obtained == 4
    assert results[STUDENT.user_id].percentage == 100


def test_unanswered_question_stays_at_zero(store: ExamStore) -> None:
    async def scenario():
        exam, (q1, q2) = await seed_exam(store, [single_choice(5, "a"), single_choice(5, "a")])
        attempt = await start_attempt(store, exam.id, STUDENT, NOW)
        await submit_attempt(store, attempt.id, STUDENT, {q2.id: "a"}, now=LATER)
        update = await question_service.update_question(
            store, q1.id, INSTRUCTOR, options=_flag(q1, "b")
        )
        return update, await _snapshot(store, exam.id)

    update, (attempts, _, results) = asyncio.run(scenario())
    assert update.recalculation.total == 0
    assert attempts[STUDENT.user_id].total_marks == 5
    assert results[STUDENT.user_id].obtained_marks == 5
    assert results[STUDENT.user_id].analytics.skipped_questions == 1


def test_manual_marks_survive_recalculation(store: ExamStore) -> None:
    async def scenario():
        exam, (choice, written) = await seed_exam(
            store, [single_choice(5, "a"), essay(10)], type=ExamType.MIXED
        )
        attempt = await start_attempt(store, exam.id, STUDENT, NOW)
        await submit_attempt(
            store, attempt.id, STUDENT, {choice.id: "b", written.id: "essay"}, now=LATER
        )
        await grade_essay_answer(store, attempt.id, INSTRUCTOR, {written.id: 6}, LATER)
        await question_service.update_question(
            store, choice.id, INSTRUCTOR, options=_flag(choice, "b")
        )
        return written, await _snapshot(store, exam.id)

    written, (attempts, submissions, results) = asyncio.run(scenario())
    assert attempts[STUDENT.user_id].total_marks == 11
    assert isinstance(submissions[STUDENT.user_id].answer_for(written.id), ManualAnswer)
    assert submissions[STUDENT.user_id].total_marks_obtained == 11
    assert results[STUDENT.user_id].obtained_marks == 11
    assert results[STUDENT.user_id].evaluated_by == INSTRUCTOR.user_id


def test_essay_questions_are_never_recalculated(store: ExamStore) -> None:
    async def scenario():
        _, (written,) = await seed_exam(store, [essay(10)], type=ExamType.MIXED)
        return await on_question_key_changed(store, written)

    report = asyncio.run(scenario())
    assert report.total == 0


def test_schedule_recalculation_enqueues_task() -> None:
    queue = InMemoryTaskQueue()

    async def scenario():
        question_id = uuid4()
        task_id = await schedule_recalculation(question_id, queue)
        task = await queue.dequeue(RECALCULATION_QUEUE)
        return question_id, task_id, task

    question_id, task_id, task = asyncio.run(scenario())
    assert task is not None
    assert task.id == task_id
    assert task.payload == {"question_id": str(question_id)}
