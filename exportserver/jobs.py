"""
Export job store and status state machine.

Statuses only ever move forward:

    queued -> processing -> completed
                         -> failed

Completed and failed are terminal.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import sessionmaker

from deckexport.errors import InvalidTransitionError, NotFoundError
from exportserver.db import ExportJobModel, ExportJobStatus, utcnow

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: Dict[ExportJobStatus, FrozenSet[ExportJobStatus]] = {
    ExportJobStatus.QUEUED: frozenset({ExportJobStatus.PROCESSING}),
    ExportJobStatus.PROCESSING: frozenset({ExportJobStatus.COMPLETED, ExportJobStatus.FAILED}),
    ExportJobStatus.COMPLETED: frozenset(),
    ExportJobStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({ExportJobStatus.COMPLETED, ExportJobStatus.FAILED})


def validate_transition(current: ExportJobStatus, target: ExportJobStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if target not in VALID_TRANSITIONS[ExportJobStatus(current)]:
        raise InvalidTransitionError(ExportJobStatus(current).value, ExportJobStatus(target).value)


class ExportJob(BaseModel):
    """Read-only snapshot of an export job row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    deck_id: str
    format: str
    status: ExportJobStatus
    result_url: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    deck_version: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ExportJobStore:
    """
    Persistence for export jobs.

    Every method opens its own short session, so one store can be shared
    by the API and by all worker threads.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], datetime] = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def create(self, deck_id: str, format: str, job_id: Optional[str] = None) -> ExportJob:
        """Create a new job in ``queued``, with a fresh id unless one is given."""
        now = self._clock()
        row = ExportJobModel(
            id=job_id or str(uuid.uuid4()),
            deck_id=deck_id,
            format=format,
            status=ExportJobStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            job = ExportJob.model_validate(row)
        logger.info("Created export job %s (deck=%s, format=%s)", job.id, deck_id, format)
        return job

    def get(self, job_id: str) -> Optional[ExportJob]:
        with self._session_factory() as session:
            row = session.get(ExportJobModel, job_id)
            return ExportJob.model_validate(row) if row is not None else None

    def list_for_deck(self, deck_id: str, format: Optional[str] = None, limit: int = 50) -> List[ExportJob]:
        """Jobs for a deck, newest first."""
        with self._session_factory() as session:
            query = session.query(ExportJobModel).filter(ExportJobModel.deck_id == deck_id)
            if format:
                query = query.filter(ExportJobModel.format == format)
            rows = query.order_by(ExportJobModel.created_at.desc()).limit(limit).all()
            return [ExportJob.model_validate(row) for row in rows]

    def latest_completed(self, deck_id: str, format: str) -> Optional[ExportJob]:
        with self._session_factory() as session:
            row = (
                session.query(ExportJobModel)
                .filter(
                    ExportJobModel.deck_id == deck_id,
                    ExportJobModel.format == format,
                    ExportJobModel.status == ExportJobStatus.COMPLETED,
                )
                .order_by(ExportJobModel.completed_at.desc())
                .first()
            )
            return ExportJob.model_validate(row) if row is not None else None

    def transition(
        self,
        job_id: str,
        status: ExportJobStatus,
        result_url: Optional[str] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> ExportJob:
        """
        Move a job to ``status``.

        The update only applies if the row still has the status that was
        validated, so two concurrent writers cannot both win.

        Raises:
            NotFoundError: If the job does not exist
            InvalidTransitionError: If the move is not allowed
        """
        status = ExportJobStatus(status)
        now = self._clock()
        with self._session_factory() as session:
            row = session.get(ExportJobModel, job_id)
            if row is None:
                raise NotFoundError(f"Export job {job_id} not found")
            current = row.status
            validate_transition(current, status)

            values = {"status": status, "updated_at": now}
            if status == ExportJobStatus.COMPLETED:
                values.update(result_url=result_url, completed_at=now)
            elif status == ExportJobStatus.FAILED:
                values.update(error_code=error_code or "INTERNAL_ERROR", error_message=error_message)

            updated = (
                session.query(ExportJobModel)
                .filter(ExportJobModel.id == job_id, ExportJobModel.status == current)
                .update(values, synchronize_session=False)
            )
            session.commit()

        if not updated:
            latest = self.get(job_id)
            raise InvalidTransitionError(latest.status.value if latest else current.value, status.value)

        logger.info("Export job %s: %s -> %s", job_id, current.value, status.value)
        return self.get(job_id)

    def set_deck_version(self, job_id: str, deck_version: datetime) -> None:
        """Record which revision of the deck is being rendered."""
        with self._session_factory() as session:
            session.query(ExportJobModel).filter(ExportJobModel.id == job_id).update(
                {"deck_version": deck_version, "updated_at": self._clock()}, synchronize_session=False
            )
            session.commit()

    def find_stale(
        self, older_than: timedelta, status: ExportJobStatus = ExportJobStatus.PROCESSING
    ) -> List[ExportJob]:
        """Jobs in ``status`` (processing by default) not updated within ``older_than``."""
        cutoff = self._clock() - older_than
        with self._session_factory() as session:
            rows = (
                session.query(ExportJobModel)
                .filter(
                    ExportJobModel.status == status,
                    ExportJobModel.updated_at < cutoff,
                )
                .order_by(ExportJobModel.updated_at)
                .all()
            )
            return [ExportJob.model_validate(row) for row in rows]
