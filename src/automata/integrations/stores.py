"""Writes into tables owned by the business application.

`notifications` and `jobs` are not managed by this service's migrations; the
statements below only touch the columns automation actions need. Each write
runs in its own session so a failed action never poisons the worker's
transaction.
"""

import json
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Protocol
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.automata.core.db import get_session
from src.automata.core.exceptions import NotFoundError, ProviderError
from src.automata.core.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_AUTOMATION_METADATA = json.dumps({"source": "automation"})


class NotificationStore(Protocol):
    async def create(self, *, tenant_id: UUID, user_id: str, title: str, body: str) -> None: ...


class JobStore(Protocol):
    async def update_status(self, *, tenant_id: UUID, job_id: str, status: str) -> None: ...

    async def create(
        self, *, tenant_id: UUID, title: str, status: str, priority: str
    ) -> str: ...


class SqlNotificationStore:
    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    async def create(self, *, tenant_id: UUID, user_id: str, title: str, body: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    text(
                        "INSERT INTO notifications "
                        "(tenant_id, user_id, type, title, body, metadata) "
                        "VALUES (:tenant_id, CAST(:user_id AS uuid), 'system', :title, :body, "
                        "CAST(:metadata AS jsonb))"
                    ),
                    {
                        "tenant_id": tenant_id,
                        "user_id": user_id,
                        "title": title,
                        "body": body,
                        "metadata": _AUTOMATION_METADATA,
                    },
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Notification insert failed", user_id=user_id, error=str(e))
            raise ProviderError(f"Notification insert failed: {e}") from e


class SqlJobStore:
    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    async def update_status(self, *, tenant_id: UUID, job_id: str, status: str) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text(
                        "UPDATE jobs SET status = :status "
                        "WHERE id = CAST(:job_id AS uuid) AND tenant_id = :tenant_id"
                    ),
                    {"status": status, "job_id": job_id, "tenant_id": tenant_id},
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Job status update failed", job_id=job_id, error=str(e))
            raise ProviderError(f"Job status update failed: {e}") from e

        if result.rowcount == 0:  # type: ignore[attr-defined]
            raise NotFoundError(f"Job {job_id} not found for tenant")

    async def create(self, *, tenant_id: UUID, title: str, status: str, priority: str) -> str:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text(
                        "INSERT INTO jobs "
                        "(tenant_id, display_id, title, status, priority, metadata) "
                        "VALUES (:tenant_id, :display_id, :title, :status, :priority, "
                        "CAST(:metadata AS jsonb)) RETURNING id"
                    ),
                    {
                        "tenant_id": tenant_id,
                        "display_id": f"JOB-AUTO-{int(time.time() * 1000)}",
                        "title": title,
                        "status": status,
                        "priority": priority,
                        "metadata": _AUTOMATION_METADATA,
                    },
                )
                job_id = result.scalar_one()
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Job insert failed", title=title, error=str(e))
            raise ProviderError(f"Job insert failed: {e}") from e
        return str(job_id)
