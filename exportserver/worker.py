"""
Export worker: leases queue messages, renders decks and records results.

Each message is handled idempotently. A redelivered message for a job that
is already processing picks the job up where it is; one for a finished job
is acknowledged and dropped. Artifacts are written to a per-job key, so
rendering twice simply overwrites the same file.
"""

import argparse
import logging
import socket
import sys
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from deckexport.assets import collect_asset_urls, fetch_assets
from deckexport.errors import InvalidTransitionError, RenderTimeoutError, UnknownBlockKindError
from deckexport.renderers import RENDERERS
from exportserver.config import Settings, get_settings
from exportserver.db import ExportJobStatus, create_db_engine, create_session_factory, init_db
from exportserver.decks import DeckRepository
from exportserver.export_queue import ExportQueue, Lease
from exportserver.jobs import ExportJobStore
from exportserver.logging_config import configure_logging
from exportserver.storage import ArtifactStorage, LocalArtifactStorage, StorageError, artifact_key

logger = logging.getLogger(__name__)

RECONCILE_INTERVAL_SECONDS = 60

AssetFetcher = Callable[[Iterable[str], float], Mapping[str, bytes]]


class JobFailure(Exception):
    """Ends a job as failed with a client-safe code and message."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class ExportWorker:
    """
    Processes export messages one at a time.

    Several workers (threads or processes) may share the same queue, job
    store and storage; the queue lease keeps them from handling the same
    message concurrently.
    """

    def __init__(
        self,
        queue: ExportQueue,
        jobs: ExportJobStore,
        decks: DeckRepository,
        storage: ArtifactStorage,
        settings: Optional[Settings] = None,
        worker_id: Optional[str] = None,
        asset_fetcher: AssetFetcher = fetch_assets,
        renderers: Optional[Dict] = None,
    ):
        self.queue = queue
        self.jobs = jobs
        self.decks = decks
        self.storage = storage
        self.settings = settings or Settings()
        self.worker_id = worker_id or f"{socket.gethostname()}-{uuid.uuid4().hex[:8]}"
        self.asset_fetcher = asset_fetcher
        self.renderers = renderers if renderers is not None else RENDERERS

    # --- Main loop ---

    def process_next(self) -> bool:
        """Handle one message if there is one. Returns False if the queue was empty."""
        lease = self.queue.reserve(self.worker_id)
        if lease is None:
            return False
        self.handle(lease)
        return True

    def run(self, stop_event: Optional[threading.Event] = None, once: bool = False) -> None:
        """
        Process messages until ``stop_event`` is set.

        Args:
            stop_event: Set to ask the loop to exit
            once: Exit as soon as the queue is empty
        """
        stop_event = stop_event or threading.Event()
        next_reconcile = 0.0
        logger.info("Worker %s started", self.worker_id)

        while not stop_event.is_set():
            if time.monotonic() >= next_reconcile:
                reconcile_stale_jobs(self.jobs, self.queue, timedelta(seconds=self.settings.stale_job_seconds))
                next_reconcile = time.monotonic() + RECONCILE_INTERVAL_SECONDS

            try:
                handled = self.process_next()
            except Exception:
                # Database hiccups must not kill the loop; the lease will expire
                logger.exception("Worker %s failed to process a message", self.worker_id)
                handled = False

            if not handled:
                if once:
                    break
                stop_event.wait(self.settings.poll_interval_seconds)

        logger.info("Worker %s stopped", self.worker_id)

    # --- Message handling ---

    def handle(self, lease: Lease) -> None:
        message = lease.message
        job_id = message.export_job_id

        job = self.jobs.get(job_id)
        if job is None:
            logger.warning("Export job %s no longer exists, dropping message", job_id)
            self.queue.ack(lease)
            return

        if job.is_terminal:
            logger.info("Export job %s already %s, skipping redelivery", job_id, job.status.value)
            self.queue.ack(lease)
            return

        if job.status == ExportJobStatus.QUEUED:
            try:
                self.jobs.transition(job_id, ExportJobStatus.PROCESSING)
            except InvalidTransitionError:
                # Another worker got there first; trust the stored status
                job = self.jobs.get(job_id)
                if job is None or job.is_terminal:
                    self.queue.ack(lease)
                    return
        else:
            logger.info("Resuming export job %s (attempt %d)", job_id, lease.attempts)

        try:
            url = self._export(lease)
        except JobFailure as e:
            logger.warning("Export job %s failed: %s", job_id, e)
            self._fail(job_id, e.code, e.message)
            self.queue.ack(lease)
            return
        except StorageError as e:
            self._retry_or_fail(lease, "UPLOAD_ERROR", "Failed to store the exported file", e)
            return
        except Exception as e:
            logger.exception("Unexpected error in export job %s", job_id)
            self._retry_or_fail(lease, "INTERNAL_ERROR", "Export failed unexpectedly", e)
            return

        try:
            self.jobs.transition(job_id, ExportJobStatus.COMPLETED, result_url=url)
        except InvalidTransitionError as e:
            logger.warning("Export job %s finished but could not be completed: %s", job_id, e)
        self.queue.ack(lease)
        logger.info("Export job %s completed: %s", job_id, url)

    def _export(self, lease: Lease) -> str:
        """Snapshot the deck, render it and store the artifact. Returns the artifact URL."""
        message = lease.message
        job_id = message.export_job_id

        record = self.decks.get_deck_by_id(message.deck_id)
        if record is None:
            raise JobFailure("DECK_NOT_FOUND", "Deck not found")

        try:
            deck = record.to_deck(default_theme_id=self.settings.default_theme_id)
        except UnknownBlockKindError as e:
            raise JobFailure(e.code, e.message) from e
        except PydanticValidationError as e:
            logger.warning("Deck %s failed validation: %s", message.deck_id, e)
            raise JobFailure("INVALID_DECK", "Deck content is invalid") from e

        # Edits made from here on belong to the next export
        if record.updated_at is not None:
            self.jobs.set_deck_version(job_id, record.updated_at)

        renderer = self.renderers[message.format]()
        brand_kit = message.brand_kit if message.brand_kit is not None else deck.meta.brand_kit
        assets = self.asset_fetcher(
            collect_asset_urls(deck, brand_kit), self.settings.asset_fetch_timeout_seconds
        )

        started = time.monotonic()
        try:
            data = self._render_with_timeout(
                lambda: renderer.render(
                    deck,
                    theme_id=message.theme_id,
                    brand_kit=brand_kit,
                    assets=assets,
                    generated_at=datetime.now(timezone.utc),
                )
            )
        except RenderTimeoutError as e:
            raise JobFailure(e.code, e.message) from e
        except UnknownBlockKindError as e:
            raise JobFailure(e.code, e.message) from e
        except Exception as e:
            logger.exception("Rendering %s for export job %s failed", message.format, job_id)
            raise JobFailure(
                f"RENDER_ERROR_{message.format.upper()}", f"Failed to render {message.format.upper()}"
            ) from e
        logger.info(
            "Rendered export job %s: %d slides, %d bytes in %.2fs",
            job_id,
            len(deck.slides),
            len(data),
            time.monotonic() - started,
        )

        key = artifact_key(message.deck_id, job_id, renderer.extension)
        return self.storage.put(key, data, renderer.content_type)

    def _render_with_timeout(self, render: Callable[[], bytes]) -> bytes:
        # A fresh thread per render; a hung render must not block the next one
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="render")
        try:
            future = executor.submit(render)
            try:
                return future.result(timeout=self.settings.render_timeout_seconds)
            except FutureTimeoutError:
                raise RenderTimeoutError(self.settings.render_timeout_seconds) from None
        finally:
            executor.shutdown(wait=False)

    def _retry_or_fail(self, lease: Lease, code: str, message: str, error: Exception) -> None:
        if lease.attempts < self.settings.max_attempts:
            delay = self.settings.backoff_seconds * 2 ** (lease.attempts - 1)
            logger.warning(
                "Export job %s attempt %d failed (%s), retrying in %.1fs",
                lease.job_id,
                lease.attempts,
                error,
                delay,
            )
            self.queue.release(lease, delay)
            return
        self._fail(lease.job_id, code, message)
        self.queue.dead_letter(lease, f"{code}: {error}")

    def _fail(self, job_id: str, code: str, message: str) -> None:
        try:
            self.jobs.transition(job_id, ExportJobStatus.FAILED, error_code=code, error_message=message)
        except InvalidTransitionError as e:
            logger.warning("Could not mark export job %s failed: %s", job_id, e)


def reconcile_stale_jobs(jobs: ExportJobStore, queue: ExportQueue, older_than: timedelta) -> List[str]:
    """
    Fail jobs stuck with nothing left to deliver them.

    Covers jobs stuck in processing and queued jobs whose message never
    made it onto the queue.

    Returns:
        Ids of the jobs that were marked failed
    """
    failed = []
    stale = jobs.find_stale(older_than) + jobs.find_stale(older_than, ExportJobStatus.QUEUED)
    for job in stale:
        if queue.has_live_message(job.id):
            continue
        try:
            if job.status == ExportJobStatus.QUEUED:
                # Failing is only allowed from processing
                jobs.transition(job.id, ExportJobStatus.PROCESSING)
                message = "Export was never picked up"
            else:
                message = "Export did not finish in time"
            jobs.transition(job.id, ExportJobStatus.FAILED, error_code="STALE_JOB", error_message=message)
        except InvalidTransitionError:
            continue
        logger.warning("Marked stale export job %s (%s) as failed", job.id, job.status.value)
        failed.append(job.id)
    return failed


def build_components(settings: Settings):
    """Create the queue, job store, deck repository and storage for ``settings``."""
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session_factory = create_session_factory(engine)
    queue = ExportQueue(session_factory, visibility_timeout=settings.visibility_timeout_seconds)
    jobs = ExportJobStore(session_factory)
    decks = DeckRepository(session_factory)
    storage = LocalArtifactStorage(settings.storage_dir, settings.public_base_url)
    return queue, jobs, decks, storage


def main() -> int:
    """Worker CLI entry point."""
    load_dotenv()  # Load .env file if present
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="deckexport-worker",
        description="Process queued deck exports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a single worker thread
  deckexport-worker

  # Run four worker threads
  deckexport-worker --concurrency 4

  # Drain the queue and exit
  deckexport-worker --once

Environment Variables:
  DATABASE_URL               Database holding decks, jobs and the queue
  STORAGE_DIR                Directory for rendered files
  EXPORT_WORKER_CONCURRENCY  Default number of worker threads
  RENDER_TIMEOUT_SECONDS     Per-render time limit
        """,
    )
    parser.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=settings.worker_concurrency,
        help=f"Worker threads (default: {settings.worker_concurrency})",
    )
    parser.add_argument("--once", action="store_true", help="Exit when the queue is empty")
    parser.add_argument(
        "--reconcile-only",
        action="store_true",
        help="Fail stale processing and orphaned queued jobs, then exit",
    )
    args = parser.parse_args()

    configure_logging(settings.log_level)
    queue, jobs, decks, storage = build_components(settings)

    if args.reconcile_only:
        failed = reconcile_stale_jobs(jobs, queue, timedelta(seconds=settings.stale_job_seconds))
        print(f"Marked {len(failed)} stale jobs as failed")
        return 0

    stop_event = threading.Event()
    threads = []
    for i in range(max(args.concurrency, 1)):
        worker = ExportWorker(queue, jobs, decks, storage, settings=settings)
        thread = threading.Thread(
            target=worker.run,
            kwargs={"stop_event": stop_event, "once": args.once},
            name=f"export-worker-{i}",
            daemon=True,
        )
        thread.start()
        threads.append(thread)

    try:
        while any(thread.is_alive() for thread in threads):
            for thread in threads:
                thread.join(timeout=0.5)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        stop_event.set()
        for thread in threads:
            thread.join(timeout=settings.render_timeout_seconds)
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())
