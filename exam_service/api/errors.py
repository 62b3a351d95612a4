"""Maps domain errors to HTTP responses.

Routers call the engine and let its exceptions propagate; this handler
turns each ExamServiceError into the same {"detail": ...} body that
HTTPException produces, with the status code the error class carries.
Anything that is not an ExamServiceError (storage failures included) is
left to Starlette and becomes a 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from exam_service.core.errors import ExamServiceError, StateConflict

logger = logging.getLogger(__name__)


async def exam_service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ExamServiceError)
    body: dict[str, object] = {"detail": exc.message}
    if isinstance(exc, StateConflict):
        body["reason"] = exc.reason
    logger.info(
        "%s %s rejected: %s (%d) %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc.status_code,
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=body)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExamServiceError, exam_service_error_handler)
