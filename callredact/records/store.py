"""Persistence of redaction records with bounded retries.

Writes are retried on transient database errors with a backoff schedule.
When retries run out a PersistenceError is raised; callers retry the
write later and never re-run detection, audio editing or remote
replacement because a write failed.
"""

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from datetime import UTC, datetime
from typing import TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from callredact.common.models import RedactionStatus, ReplacePhase
from callredact.db.models import RedactionRecordModel
from callredact.exceptions import PersistenceError, RemoteReplacePartialError
from callredact.records.state import RedactionRecord

logger = structlog.get_logger()

DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_DELAYS = [0.5, 1.0, 2.0]

T = TypeVar("T")

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _is_transient(error: Exception) -> bool:
    if isinstance(error, OperationalError | InterfaceError):
        return True
    if isinstance(error, DBAPIError):
        return bool(error.connection_invalidated)
    return isinstance(error, ConnectionError | TimeoutError)


def _to_domain(row: RedactionRecordModel) -> RedactionRecord:
    return RedactionRecord(
        recording_id=row.recording_id,
        status=RedactionStatus(row.status) if row.status else None,
        redacted=row.redacted,
        segments=list(row.segments or []),
        sanitized_text=row.sanitized_text,
        redacted_at=row.redacted_at,
        error=row.error,
        error_kind=row.error_kind,
        replace_phase=ReplacePhase(row.replace_phase) if row.replace_phase else None,
        remote_target_path=row.remote_target_path,
        remote_temp_path=row.remote_temp_path,
        attempts=row.attempts,
        created_at=row.created_at or datetime.now(UTC),
        updated_at=row.updated_at or datetime.now(UTC),
    )


def _apply(row: RedactionRecordModel, record: RedactionRecord) -> None:
    row.status = record.status.value if record.status else RedactionStatus.PROCESSING.value
    row.redacted = record.redacted
    row.segments = record.segments
    row.sanitized_text = record.sanitized_text
    row.redacted_at = record.redacted_at
    row.error = record.error
    row.error_kind = record.error_kind
    row.replace_phase = record.replace_phase.value if record.replace_phase else None
    row.remote_target_path = record.remote_target_path
    row.remote_temp_path = record.remote_temp_path
    row.attempts = record.attempts
    row.updated_at = record.updated_at


class RedactionRecordStore:
    """Reads and writes RedactionRecord rows."""

    def __init__(
        self,
        db_session_factory: SessionFactory,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_delays: list[float] | None = None,
    ) -> None:
        self.db_session_factory = db_session_factory
        self.max_retries = max_retries
        self.backoff_delays = backoff_delays or DEFAULT_BACKOFF_DELAYS

    async def _with_retries(
        self,
        operation: str,
        recording_id: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        log = logger.bind(operation=operation, recording_id=recording_id)
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            attempt_log = log.bind(attempt=attempt + 1, max_attempts=self.max_retries + 1)
            try:
                async with self.db_session_factory() as db:
                    return await fn(db)
            except (SQLAlchemyError, ConnectionError, TimeoutError) as e:
                last_error = e
                if not _is_transient(e):
                    attempt_log.error("record_persist_failed", error=str(e))
                    raise PersistenceError(
                        f"{operation} failed for {recording_id}: {e}",
                        recording_id=recording_id,
                        attempts=attempt + 1,
                    ) from e
                attempt_log.warning("record_persist_transient_error", error=str(e))

            if attempt < self.max_retries:
                delay = (
                    self.backoff_delays[attempt]
                    if attempt < len(self.backoff_delays)
                    else self.backoff_delays[-1]
                )
                await asyncio.sleep(delay)

        log.error(
            "record_persist_exhausted",
            total_attempts=self.max_retries + 1,
            last_error=str(last_error),
        )
        raise PersistenceError(
            f"{operation} failed for {recording_id} after "
            f"{self.max_retries + 1} attempts: {last_error}",
            recording_id=recording_id,
            attempts=self.max_retries + 1,
        ) from last_error

    async def get(self, recording_id: str) -> RedactionRecord | None:
        async def _get(db: AsyncSession) -> RedactionRecord | None:
            row = await db.get(RedactionRecordModel, recording_id)
            return _to_domain(row) if row is not None else None

        return await self._with_retries("get_record", recording_id, _get)

    async def save(self, record: RedactionRecord) -> None:
        """Insert or update ``record``.

        Raises:
            PersistenceError: The write failed after all retries
        """

        async def _save(db: AsyncSession) -> None:
            row = await db.get(RedactionRecordModel, record.recording_id)
            if row is None:
                row = RedactionRecordModel(
                    recording_id=record.recording_id,
                    created_at=record.created_at,
                )
                db.add(row)
            _apply(row, record)
            await db.commit()

        await self._with_retries("save_record", record.recording_id, _save)
        logger.debug(
            "record_saved",
            recording_id=record.recording_id,
            status=record.status.value if record.status else None,
        )

    async def list_by_status(
        self, status: RedactionStatus, limit: int = 100
    ) -> list[RedactionRecord]:
        async def _list(db: AsyncSession) -> list[RedactionRecord]:
            result = await db.execute(
                select(RedactionRecordModel)
                .where(RedactionRecordModel.status == status.value)
                .order_by(RedactionRecordModel.updated_at.desc())
                .limit(limit)
            )
            return [_to_domain(row) for row in result.scalars().all()]

        return await self._with_retries("list_records", status.value, _list)

    async def list_partial_replacements(self, limit: int = 100) -> list[RedactionRecord]:
        """Failed records whose original was deleted before the rename landed."""

        async def _list(db: AsyncSession) -> list[RedactionRecord]:
            result = await db.execute(
                select(RedactionRecordModel)
                .where(
                    RedactionRecordModel.status == RedactionStatus.FAILED.value,
                    RedactionRecordModel.error_kind == RemoteReplacePartialError.kind,
                )
                .order_by(RedactionRecordModel.updated_at.desc())
                .limit(limit)
            )
            return [_to_domain(row) for row in result.scalars().all()]

        return await self._with_retries("list_partial_replacements", "*", _list)
