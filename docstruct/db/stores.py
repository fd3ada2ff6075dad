"""Repositories over the file, run, and extraction tables.

Each call runs in its own short-lived session; returned records are
detached and safe to read after the session closes. Database errors are
raised as ``PersistenceFailure``.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from docstruct.errors import PersistenceFailure
from docstruct.models import RunStatus
from docstruct.utils.logger import get_logger

from .models import ExtractionRecord, FileRecord, RunRecord

logger = get_logger(__name__)

T = TypeVar("T")


class _Store:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Database operation failed: %s", exc)
            raise PersistenceFailure(str(exc)) from exc
        finally:
            session.close()

    def _save(self, record: T) -> T:
        with self._session() as session:
            merged = session.merge(record)
            session.flush()
            session.refresh(merged)
            return merged

    def _query(self, fn: Callable[[Session], T]) -> T:
        with self._session() as session:
            return fn(session)


class FileStore(_Store):
    """Uploaded file metadata."""

    def get(self, file_id: str) -> FileRecord | None:
        return self._query(lambda s: s.get(FileRecord, file_id))

    def save(self, record: FileRecord) -> FileRecord:
        return self._save(record)


class RunStore(_Store):
    """Run state. Status changes go through :meth:`transition`."""

    def get(self, run_id: str) -> RunRecord | None:
        return self._query(lambda s: s.get(RunRecord, run_id))

    def save(self, record: RunRecord) -> RunRecord:
        return self._save(record)

    def create(self, file_id: str) -> RunRecord:
        """Create a QUEUED run for a file."""
        return self._save(RunRecord(file_id=file_id, status=RunStatus.QUEUED.value))

    def transition(
        self,
        run_id: str,
        expected: RunStatus,
        new: RunStatus,
        **changes: Any,
    ) -> bool:
        """Atomically move a run from ``expected`` to ``new``.

        Args:
            run_id: Run to update.
            expected: Status the run must currently have.
            new: Status to set.
            **changes: Other columns to set in the same statement.

        Returns:
            ``True`` if the run was in ``expected`` and has been updated.
        """
        stmt = (
            update(RunRecord)
            .where(RunRecord.run_id == run_id, RunRecord.status == expected.value)
            .values(status=new.value, **changes)
        )
        with self._session() as session:
            applied = session.execute(stmt).rowcount == 1
        logger.debug("Run %s %s -> %s applied=%s", run_id, expected, new, applied)
        return applied


class ExtractionStore(_Store):
    """Persisted extraction results, one per run."""

    def get_by_run(self, run_id: str) -> ExtractionRecord | None:
        stmt = select(ExtractionRecord).where(ExtractionRecord.run_id == run_id)
        return self._query(lambda s: s.scalars(stmt).first())

    def save(self, record: ExtractionRecord) -> ExtractionRecord:
        return self._save(record)

    def list_all(self) -> list[ExtractionRecord]:
        stmt = select(ExtractionRecord).order_by(ExtractionRecord.created_at.desc())
        return self._query(lambda s: list(s.scalars(stmt)))

    def delete(self, record: ExtractionRecord) -> None:
        with self._session() as session:
            existing = session.get(ExtractionRecord, record.id)
            if existing is not None:
                session.delete(existing)
