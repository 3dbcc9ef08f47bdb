"""
Database models and setup.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    create_engine,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC now; SQLite does not keep timezone information."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ExportJobStatus(str, Enum):
    """Export job status enum."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DeckModel(Base):
    """Stored deck. Owned by the editor; the export server only reads it."""
    __tablename__ = "decks"

    id = Column(String, primary_key=True)
    workspace_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    language = Column(String, default="no", nullable=False)
    theme_id = Column(String, nullable=True)

    # Brand kit
    primary_color = Column(String, nullable=True)
    secondary_color = Column(String, nullable=True)
    logo_url = Column(String, nullable=True)

    slides = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class ExportJobModel(Base):
    """Export job record; the source of truth for job status."""
    __tablename__ = "export_jobs"

    id = Column(String, primary_key=True)
    deck_id = Column(String, nullable=False, index=True)
    format = Column(String, nullable=False)
    status = Column(SQLEnum(ExportJobStatus), default=ExportJobStatus.QUEUED, nullable=False)

    # Results
    result_url = Column(String, nullable=True)
    error_code = Column(String, nullable=True)
    error_message = Column(String, nullable=True)
    deck_version = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)


class QueueMessageModel(Base):
    """Pending export message, one per job id."""
    __tablename__ = "export_queue"

    job_id = Column(String, primary_key=True)
    payload = Column(JSON, nullable=False)
    priority = Column(Integer, default=2, nullable=False)
    enqueued_at = Column(DateTime, default=utcnow, nullable=False)

    # Lease state
    visible_at = Column(DateTime, default=utcnow, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    lease_token = Column(String, nullable=True)
    leased_by = Column(String, nullable=True)

    # Dead-letter state
    dead = Column(Boolean, default=False, nullable=False)
    dead_reason = Column(String, nullable=True)

    __table_args__ = (Index("ix_export_queue_ready", "dead", "visible_at", "priority"),)


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections are shared across worker threads."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(database_url, pool_pre_ping=True)

    if url.database in (None, "", ":memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(
            database_url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )

    Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args={"check_same_thread": False})


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database."""
    Base.metadata.create_all(bind=engine)
