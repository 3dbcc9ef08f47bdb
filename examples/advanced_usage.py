"""
Advanced usage example for DeckExport.

Runs the whole export pipeline in one process: store a deck, queue an
export the way the API does, let a worker render it, and read the job.
"""

import json
import uuid
from pathlib import Path

from exportserver.config import Settings
from exportserver.export_queue import build_export_message
from exportserver.worker import ExportWorker, build_components


def main():
    settings = Settings(
        database_url="sqlite:///output/pipeline/exports.db",
        storage_dir="output/pipeline/files",
    )
    queue, jobs, decks, storage = build_components(settings)

    with open(Path("examples/sample_deck.json"), "r", encoding="utf-8") as f:
        data = json.load(f)

    brand = data["meta"].get("brandKit", {})
    record = decks.create_deck(
        title=data["meta"]["title"],
        slides=data["slides"],
        workspace_id=settings.default_workspace_id,
        theme_id=data["meta"].get("themeId"),
        language=data["meta"].get("language", "no"),
        primary_color=brand.get("primaryColor"),
        secondary_color=brand.get("secondaryColor"),
        logo_url=brand.get("logoUrl"),
    )

    # What POST /decks/{id}/export does
    for export_format in ("pdf", "pptx"):
        job_id = str(uuid.uuid4())
        message = build_export_message(record, job_id, export_format, settings.default_theme_id)
        job = jobs.create(record.id, export_format, job_id=job_id)
        queue.add_export_job(message)
        print(f"Queued {export_format} export {job.id}")

    # What deckexport-worker does
    ExportWorker(queue, jobs, decks, storage, settings=settings).run(once=True)

    for job in jobs.list_for_deck(record.id):
        print(f"  {job.format}: {job.status.value} -> {job.result_url or job.error_code}")


if __name__ == "__main__":
    main()
