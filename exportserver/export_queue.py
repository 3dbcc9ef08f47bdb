"""
Export queue on top of the database.

Messages are leased rather than popped: ``reserve`` hides a message for the
visibility timeout, and a message that is neither acked nor released in
that time becomes visible again. Delivery is therefore at-least-once.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import sessionmaker

from deckexport.models import BrandKit
from exportserver.db import QueueMessageModel, utcnow
from exportserver.decks import DeckRecord

logger = logging.getLogger(__name__)

# Lower runs first; PDFs are usually wanted for immediate download
PRIORITIES: Dict[str, int] = {"pdf": 1, "pptx": 2}

# How many ready messages a reserve call looks at before giving up
RESERVE_BATCH = 5


class ExportQueueMessage(BaseModel):
    """Everything a worker needs to run one export."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    export_job_id: str = Field(alias="exportJobId")
    deck_id: str = Field(alias="deckId")
    format: Literal["pdf", "pptx"]
    theme_id: str = Field(alias="themeId")
    brand_kit: Optional[BrandKit] = Field(default=None, alias="brandKit")

    def to_payload(self) -> Dict:
        """Wire form; ``brandKit`` is left out entirely when absent."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def build_export_message(
    record: DeckRecord, job_id: str, format: str, default_theme_id: str
) -> ExportQueueMessage:
    """Queue message for a job; the brand kit is only included when set."""
    return ExportQueueMessage(
        export_job_id=job_id,
        deck_id=record.id,
        format=format,
        theme_id=record.theme_id or default_theme_id,
        brand_kit=record.brand_kit,
    )


@dataclass(frozen=True)
class Lease:
    """A worker's temporary claim on one message."""

    job_id: str
    token: str
    worker_id: str
    attempts: int
    message: ExportQueueMessage
    expires_at: datetime


class ExportQueue:
    def __init__(
        self,
        session_factory: sessionmaker,
        visibility_timeout: float = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self.visibility_timeout = visibility_timeout
        self._clock = clock

    def add_export_job(self, message: ExportQueueMessage) -> str:
        """
        Enqueue a message keyed by its job id.

        Re-adding a job id replaces the pending message and resets its
        delivery state instead of creating a duplicate.

        Returns:
            The job id of the accepted message
        """
        now = self._clock()
        values = {
            "payload": message.to_payload(),
            "priority": PRIORITIES.get(message.format, max(PRIORITIES.values())),
            "enqueued_at": now,
            "visible_at": now,
            "attempts": 0,
            "lease_token": None,
            "leased_by": None,
            "dead": False,
            "dead_reason": None,
        }
        with self._session_factory() as session:
            row = session.get(QueueMessageModel, message.export_job_id)
            if row is None:
                session.add(QueueMessageModel(job_id=message.export_job_id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            session.commit()

        logger.info("Enqueued export job %s (%s)", message.export_job_id, message.format)
        return message.export_job_id

    def reserve(self, worker_id: str) -> Optional[Lease]:
        """
        Lease the next visible message, or return None if there is none.

        The claim is a compare-and-swap on ``visible_at``: of several workers
        that saw the same message, exactly one update matches.
        """
        now = self._clock()
        expires_at = now + timedelta(seconds=self.visibility_timeout)

        with self._session_factory() as session:
            candidates = (
                session.query(QueueMessageModel.job_id, QueueMessageModel.visible_at)
                .filter(QueueMessageModel.dead.is_(False), QueueMessageModel.visible_at <= now)
                .order_by(QueueMessageModel.priority, QueueMessageModel.enqueued_at)
                .limit(RESERVE_BATCH)
                .all()
            )
            for job_id, visible_at in candidates:
                token = uuid.uuid4().hex
                claimed = (
                    session.query(QueueMessageModel)
                    .filter(
                        QueueMessageModel.job_id == job_id,
                        QueueMessageModel.visible_at == visible_at,
                        QueueMessageModel.dead.is_(False),
                    )
                    .update(
                        {
                            "visible_at": expires_at,
                            "attempts": QueueMessageModel.attempts + 1,
                            "lease_token": token,
                            "leased_by": worker_id,
                        },
                        synchronize_session=False,
                    )
                )
                session.commit()
                if not claimed:
                    continue

                row = session.get(QueueMessageModel, job_id)
                lease = Lease(
                    job_id=job_id,
                    token=token,
                    worker_id=worker_id,
                    attempts=row.attempts,
                    message=ExportQueueMessage.model_validate(row.payload),
                    expires_at=expires_at,
                )
                logger.debug("Worker %s leased %s (attempt %d)", worker_id, job_id, lease.attempts)
                return lease
        return None

    def ack(self, lease: Lease) -> bool:
        """Remove the message. Returns False if the lease was lost."""
        with self._session_factory() as session:
            deleted = (
                session.query(QueueMessageModel)
                .filter(QueueMessageModel.job_id == lease.job_id, QueueMessageModel.lease_token == lease.token)
                .delete(synchronize_session=False)
            )
            session.commit()
        if not deleted:
            logger.warning("Ack for %s ignored: lease no longer held by %s", lease.job_id, lease.worker_id)
        return bool(deleted)

    def release(self, lease: Lease, delay: float = 0) -> bool:
        """Make the message visible again after ``delay`` seconds."""
        return self._update_leased(
            lease,
            {"visible_at": self._clock() + timedelta(seconds=delay)},
        )

    def dead_letter(self, lease: Lease, reason: str) -> bool:
        """Park the message; it is kept for inspection but never delivered again."""
        logger.warning("Dead-lettering export job %s: %s", lease.job_id, reason)
        return self._update_leased(lease, {"dead": True, "dead_reason": reason})

    def has_live_message(self, job_id: str) -> bool:
        """True while a message for the job is pending or leased."""
        with self._session_factory() as session:
            return (
                session.query(QueueMessageModel.job_id)
                .filter(QueueMessageModel.job_id == job_id, QueueMessageModel.dead.is_(False))
                .first()
                is not None
            )

    def depth(self) -> int:
        """Number of live messages, leased or not."""
        with self._session_factory() as session:
            return session.query(QueueMessageModel).filter(QueueMessageModel.dead.is_(False)).count()

    def _update_leased(self, lease: Lease, values: Dict) -> bool:
        values = {**values, "lease_token": None, "leased_by": None}
        with self._session_factory() as session:
            updated = (
                session.query(QueueMessageModel)
                .filter(QueueMessageModel.job_id == lease.job_id, QueueMessageModel.lease_token == lease.token)
                .update(values, synchronize_session=False)
            )
            session.commit()
        return bool(updated)
