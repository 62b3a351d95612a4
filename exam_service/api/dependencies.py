from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from exam_service.db.engine import UnitOfWork, unit_of_work
from exam_service.models.principal import Principal
from exam_service.repos.store import ExamStore
from exam_service.services import token_service
from exam_service.services.notifications import (
    DeferredEventSink,
    EventSink,
    QueueEventSink,
)

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")

# Process-wide store used when DATABASE_URL is not configured.
_memory_store = ExamStore.in_memory()
_event_sink = QueueEventSink()


def reset_memory_store() -> ExamStore:
    """Replace the in-memory store with an empty one and return it."""
    global _memory_store
    _memory_store = ExamStore.in_memory()
    return _memory_store


async def get_unit_of_work() -> AsyncGenerator[UnitOfWork, None]:
    """One transaction per request, committed after the route returns."""
    async with unit_of_work() as uow:
        yield uow


def store_for(uow: UnitOfWork) -> ExamStore:
    if uow.session is None:
        return _memory_store
    return ExamStore.postgres(uow.session)


def get_store(uow: Annotated[UnitOfWork, Depends(get_unit_of_work)]) -> ExamStore:
    return store_for(uow)


def get_events(uow: Annotated[UnitOfWork, Depends(get_unit_of_work)]) -> EventSink:
    return DeferredEventSink(_event_sink, uow.after_commit)


def get_now() -> datetime:
    return datetime.now(UTC)


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        sorted(principal.roles),
    )
    return principal


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "instructor"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


UnitOfWorkDep = Annotated[UnitOfWork, Depends(get_unit_of_work)]
StoreDep = Annotated[ExamStore, Depends(get_store)]
EventsDep = Annotated[EventSink, Depends(get_events)]
NowDep = Annotated[datetime, Depends(get_now)]
UserDep = Annotated[Principal, Depends(require_user)]
StaffDep = Annotated[Principal, Depends(require_any_role({"instructor", "admin"}))]
