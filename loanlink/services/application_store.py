"""Persistent record of loan applications.

The store is the single source of truth for ``status`` and
``application_fee_status``. Every mutation is scoped to one application id and
goes through ``conditional_update``: a single ``UPDATE ... WHERE id = :id AND
<expected>`` statement that succeeds only if exactly one row still matches the
caller's precondition. That statement is the only synchronization primitive;
no lock is held between the caller's read and its write.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, TypeVar
from uuid import UUID, uuid4

from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loanlink.models.loan_application import LoanApplication

logger = logging.getLogger(__name__)

T = TypeVar("T")

_IMMUTABLE_FIELDS = frozenset({"id", "borrower_email", "created_at"})
_COLUMNS = frozenset(column.name for column in LoanApplication.__table__.columns)


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _normalize_fields(fields: Mapping[str, Any], *, allow_immutable: bool) -> dict[str, Any]:
    unknown = set(fields) - _COLUMNS
    if unknown:
        raise ValueError(f"Unknown application fields: {sorted(unknown)}")
    if not allow_immutable:
        frozen = set(fields) & _IMMUTABLE_FIELDS
        if frozen:
            raise ValueError(f"Immutable application fields: {sorted(frozen)}")
    return {name: _plain(value) for name, value in fields.items()}


class ApplicationStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        retry_backoff_seconds: float = 0.2,
    ) -> None:
        self._session_factory = session_factory
        self._retry_backoff_seconds = retry_backoff_seconds

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run ``operation`` in its own session, retrying once on transient failures."""
        try:
            return await self._attempt(operation)
        except Exception as exc:
            if not _is_transient(exc):
                raise
            logger.warning(
                "Transient storage failure, retrying once in %.2fs: %s",
                self._retry_backoff_seconds,
                exc.__class__.__name__,
            )
        await asyncio.sleep(self._retry_backoff_seconds)
        return await self._attempt(operation)

    async def _attempt(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async with self._session_factory() as session:
            async with session.begin():
                return await operation(session)

    async def find_by_id(self, application_id: UUID) -> LoanApplication | None:
        async def _find(session: AsyncSession) -> LoanApplication | None:
            stmt = select(LoanApplication).where(LoanApplication.id == application_id)
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

        return await self._run(_find)

    async def find_many(
        self,
        *,
        borrower_email: str | None = None,
        status: str | Enum | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LoanApplication]:
        """Newest first. ``None`` filters are not applied; the email match ignores case."""
        conditions = []
        if borrower_email is not None:
            conditions.append(func.lower(LoanApplication.borrower_email) == borrower_email.lower())
        if status is not None:
            conditions.append(LoanApplication.status == _plain(status))
        stmt = (
            select(LoanApplication)
            .where(*conditions)
            .order_by(LoanApplication.created_at.desc(), LoanApplication.id)
            .limit(limit)
            .offset(offset)
        )

        async def _find_many(session: AsyncSession) -> list[LoanApplication]:
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self._run(_find_many)

    async def insert(self, document: Mapping[str, Any]) -> UUID:
        values = _normalize_fields(document, allow_immutable=True)
        values.setdefault("id", uuid4())
        now = datetime.now(timezone.utc)
        values.setdefault("created_at", now)
        values.setdefault("updated_at", now)

        async def _insert(session: AsyncSession) -> UUID:
            await session.execute(insert(LoanApplication).values(**values))
            return values["id"]

        return await self._run(_insert)

    async def conditional_update(
        self,
        application_id: UUID,
        expected: Mapping[str, Any],
        new_fields: Mapping[str, Any],
    ) -> bool:
        """Write ``new_fields`` iff the row still matches ``expected``.

        Returns ``False`` when the id is unknown or the precondition no longer
        holds; the caller re-reads to tell the two apart.
        """
        conditions = _normalize_fields(expected, allow_immutable=True)
        values = _normalize_fields(new_fields, allow_immutable=False)
        if not values:
            raise ValueError("conditional_update requires at least one field to write")
        values.setdefault("updated_at", datetime.now(timezone.utc))

        clauses = [LoanApplication.id == application_id]
        for name, value in conditions.items():
            column = LoanApplication.__table__.c[name]
            clauses.append(column.is_(None) if value is None else column == value)

        stmt = (
            update(LoanApplication)
            .where(and_(*clauses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async def _update(session: AsyncSession) -> bool:
            result = await session.execute(stmt)
            return result.rowcount == 1

        return await self._run(_update)
