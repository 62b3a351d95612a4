from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from exam_service.api.attempts import router as attempts_router
from exam_service.api.errors import install_error_handlers
from exam_service.api.exams import router as exams_router
from exam_service.api.health import router as health_router
from exam_service.api.metrics_endpoint import router as metrics_router
from exam_service.api.questions import router as questions_router
from exam_service.api.results import router as results_router
from exam_service.api.statistics import router as statistics_router
from exam_service.core.config import SETTINGS
from exam_service.core.logging import setup_logging
from exam_service.db.engine import lifespan_db
from exam_service.db.redis import lifespan_redis
from exam_service.middleware.metrics import MetricsMiddleware
from exam_service.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails.
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="exam-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first: RequestContext → Metrics → CORS → route handler.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

install_error_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(exams_router)
app.include_router(questions_router)
app.include_router(attempts_router)
app.include_router(results_router)
app.include_router(statistics_router)

logger.info(
    "exam-service started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
