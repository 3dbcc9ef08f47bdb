"""
Fixtures for the export server tests.

Each test gets its own SQLite file and storage directory under tmp_path.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from exportserver.config import Settings
from exportserver.db import create_db_engine, create_session_factory, init_db, utcnow
from exportserver.decks import DeckRepository
from exportserver.export_queue import ExportQueue
from exportserver.jobs import ExportJobStore
from exportserver.main import create_app
from exportserver.storage import LocalArtifactStorage
from exportserver.worker import ExportWorker

EXAMPLE_SLIDES = [
    {
        "type": "cover",
        "blocks": [
            {"kind": "title", "text": "Quarterly Review"},
            {"kind": "text", "text": "Results and next steps"},
        ],
    },
    {
        "type": "summary_with_stats",
        "blocks": [
            {"kind": "title", "text": "Highlights"},
            {"kind": "stat_block", "value": "95%", "label": "Retention", "sublabel": "up from 90%"},
            {"kind": "stat_block", "value": "1.2M", "label": "Users"},
            {"kind": "stat_block", "value": "42", "label": "Markets"},
            {"kind": "bullets", "items": ["Revenue grew", "Churn fell"]},
        ],
    },
    {
        "type": "hero_stats",
        "blocks": [{"kind": "stat_block", "value": "3x", "label": "Faster exports"}],
    },
]


class FakeClock:
    """Manually advanced clock for lease and staleness tests."""

    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'exports.db'}",
        storage_dir=str(tmp_path / "output"),
        render_timeout_seconds=10,
        visibility_timeout_seconds=30,
        max_attempts=3,
        backoff_seconds=0,
        poll_interval_seconds=0.05,
        stale_job_seconds=60,
    )


@pytest.fixture
def session_factory(settings):
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def jobs(session_factory, clock) -> ExportJobStore:
    return ExportJobStore(session_factory, clock=clock)


@pytest.fixture
def queue(session_factory, clock, settings) -> ExportQueue:
    return ExportQueue(session_factory, visibility_timeout=settings.visibility_timeout_seconds, clock=clock)


@pytest.fixture
def decks(session_factory) -> DeckRepository:
    return DeckRepository(session_factory)


@pytest.fixture
def storage(settings) -> LocalArtifactStorage:
    return LocalArtifactStorage(settings.storage_dir, settings.public_base_url)


@pytest.fixture
def deck(decks, settings):
    return decks.create_deck(
        title="Quarterly Review",
        slides=EXAMPLE_SLIDES,
        workspace_id=settings.default_workspace_id,
        language="en",
        deck_id="deck-1",
    )


@pytest.fixture
def worker(queue, jobs, decks, storage, settings) -> ExportWorker:
    return ExportWorker(
        queue,
        jobs,
        decks,
        storage,
        settings=settings,
        worker_id="test-worker",
        asset_fetcher=lambda urls, timeout: {},
    )


@pytest.fixture
def client(settings, session_factory, storage, jobs, queue):
    app = create_app(settings=settings, session_factory=session_factory, storage=storage)
    # Share the fixtures' stores so the app and the tests run on the same clock
    app.state.jobs = jobs
    app.state.queue = queue
    with TestClient(app) as test_client:
        yield test_client
