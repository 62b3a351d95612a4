"""Domain error taxonomy for the scoring engine.

The engine raises these; it never builds HTTP responses.  The API layer
maps each class to a status code in one exception handler (see
exam_service/api/errors.py).

  ValidationFault     malformed or missing input; nothing was written
  AuthorizationFault  caller is not the owner / lacks the role
  NotFound            referenced record does not exist
  StateConflict       the record's current state forbids the transition
  DataIntegrityFault  an answer key violates its question-type invariant

Storage errors are deliberately NOT wrapped: a failed write must surface
to the caller unchanged so the request session rolls back.
"""

from __future__ import annotations

from exam_service.core.metrics import STATE_CONFLICTS


class ExamServiceError(Exception):
    """Base class for every domain error the engine raises."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFault(ExamServiceError, ValueError):
    status_code = 422


class AuthorizationFault(ExamServiceError):
    status_code = 403


class NotFound(ExamServiceError, LookupError):
    status_code = 404


class StateConflict(ExamServiceError):
    """Rejected transition.  `reason` is a short machine-readable tag."""

    status_code = 409

    def __init__(self, message: str, *, reason: str = "conflict") -> None:
        super().__init__(message)
        self.reason = reason


class DataIntegrityFault(ExamServiceError):
    status_code = 422

    def __init__(self, message: str, *, question_id: object | None = None) -> None:
        super().__init__(message)
        self.question_id = question_id


def state_conflict(message: str, *, reason: str) -> StateConflict:
    """Build a StateConflict and count it under its reason tag."""
    STATE_CONFLICTS.labels(reason=reason).inc()
    return StateConflict(message, reason=reason)
