"""
Tests for the export HTTP API.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from exportserver.db import ExportJobStatus


def _export(client, deck_id="deck-1", **kwargs):
    return client.post(f"/decks/{deck_id}/export", **kwargs)


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


@pytest.mark.parametrize("format", ["pdf", "pptx"])
def test_request_export(client, deck, jobs, queue, format):
    """One queued job and one queue message per request."""
    response = _export(client, json={"format": format})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"

    all_jobs = jobs.list_for_deck("deck-1")
    assert [job.id for job in all_jobs] == [body["exportJobId"]]
    assert all_jobs[0].status == ExportJobStatus.QUEUED
    assert all_jobs[0].format == format

    assert queue.depth() == 1
    lease = queue.reserve("w1")
    assert lease.message.export_job_id == body["exportJobId"]
    assert lease.message.theme_id == "nordic_light"
    assert "brandKit" not in lease.message.to_payload()


def test_request_export_with_brand_kit(client, decks, queue, settings):
    decks.create_deck(
        title="Branded",
        slides=[],
        workspace_id=settings.default_workspace_id,
        theme_id="corporate_blue",
        secondary_color="#00AA00",
        deck_id="branded",
    )
    assert _export(client, "branded", json={"format": "pdf"}).status_code == 200

    payload = queue.reserve("w1").message.to_payload()
    assert payload["themeId"] == "corporate_blue"
    assert payload["brandKit"] == {"secondaryColor": "#00aa00"}


def test_request_export_with_invalid_stored_color(client, deck, decks, jobs, queue):
    decks.update_deck("deck-1", primary_color="red")

    response = _export(client, json={"format": "pptx"})

    assert response.status_code == 200
    assert [job.id for job in jobs.list_for_deck("deck-1")] == [response.json()["exportJobId"]]
    assert queue.depth() == 1
    assert "brandKit" not in queue.reserve("w1").message.to_payload()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"json": {"format": "docx"}},
        {"json": {}},
        {"json": {"format": None}},
        {"content": b"not json", "headers": {"Content-Type": "application/json"}},
    ],
)
def test_invalid_request(client, deck, jobs, queue, kwargs):
    response = _export(client, **kwargs)

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"]
    assert jobs.list_for_deck("deck-1") == []
    assert queue.depth() == 0


def test_invalid_format_details(client, deck):
    error = _export(client, json={"format": "docx"}).json()["error"]
    assert "format" in error["details"]


def test_missing_deck(client, jobs, queue):
    response = _export(client, "ghost", json={"format": "pdf"})

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"
    assert jobs.list_for_deck("ghost") == []
    assert queue.depth() == 0


def test_other_workspace(client, deck, jobs):
    response = _export(client, json={"format": "pdf"}, headers={"X-Workspace-Id": "ws_other"})
    assert response.status_code == 404
    assert jobs.list_for_deck("deck-1") == []


def test_job_is_not_created_when_message_cannot_be_built(client, deck, jobs, queue, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("bad deck row")

    monkeypatch.setattr("exportserver.main.build_export_message", broken)
    response = _export(client, json={"format": "pdf"})

    assert response.status_code == 500
    assert jobs.list_for_deck("deck-1") == []
    assert queue.depth() == 0


def test_unexpected_error(client, deck, monkeypatch):
    def broken(message):
        raise RuntimeError("database is on fire")

    monkeypatch.setattr(client.app.state.queue, "add_export_job", broken)
    response = _export(client, json={"format": "pdf"})

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["code"] == "INTERNAL_ERROR"
    assert "fire" not in error["message"]


def test_status_lifecycle(client, deck, worker):
    job_id = _export(client, json={"format": "pptx"}).json()["exportJobId"]

    status = client.get(f"/decks/deck-1/export/{job_id}").json()
    assert status["status"] == "queued"
    assert status["format"] == "pptx"
    assert "fileUrl" not in status
    assert "error" not in status

    worker.process_next()

    status = client.get(f"/decks/deck-1/export/{job_id}").json()
    assert status["status"] == "completed"
    assert status["fileUrl"] == f"/files/exports/deck-1/{job_id}.pptx"
    assert status["completedAt"]

    # The public URL serves the artifact
    assert client.get(status["fileUrl"]).content[:2] == b"PK"


def test_failed_status(client, deck, jobs):
    job = jobs.create("deck-1", "pdf")
    jobs.transition(job.id, ExportJobStatus.PROCESSING)
    jobs.transition(job.id, ExportJobStatus.FAILED, error_code="RENDER_TIMEOUT", error_message="Too slow")

    status = client.get(f"/decks/deck-1/export/{job.id}").json()
    assert status["status"] == "failed"
    assert status["error"] == {"code": "RENDER_TIMEOUT", "message": "Too slow"}
    assert "fileUrl" not in status


def test_status_of_other_decks_job(client, deck, decks, jobs, settings):
    decks.create_deck(title="Other", slides=[], workspace_id=settings.default_workspace_id, deck_id="deck-2")
    job = jobs.create("deck-2", "pdf")

    response = client.get(f"/decks/deck-1/export/{job.id}")
    assert response.status_code == 404
    assert client.get("/decks/deck-1/export/nope").status_code == 404


def test_list_exports(client, deck):
    ids = []
    for format in ("pdf", "pptx", "pdf"):
        ids.append(_export(client, json={"format": format}).json()["exportJobId"])

    exports = client.get("/decks/deck-1/exports").json()["exports"]
    assert {e["exportJobId"] for e in exports} == set(ids)
    assert [e["createdAt"] for e in exports] == sorted((e["createdAt"] for e in exports), reverse=True)

    pdfs = client.get("/decks/deck-1/exports", params={"format": "pdf"}).json()["exports"]
    assert {e["exportJobId"] for e in pdfs} == {ids[0], ids[2]}

    assert client.get("/decks/deck-1/exports", params={"format": "docx"}).status_code == 400


def test_download(client, deck, worker):
    job_id = _export(client, json={"format": "pdf"}).json()["exportJobId"]

    not_ready = client.get(f"/decks/deck-1/export/{job_id}/download")
    assert not_ready.status_code == 400
    assert not_ready.json()["error"]["code"] == "NOT_READY"

    worker.process_next()

    response = client.get(f"/decks/deck-1/export/{job_id}/download")
    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert "Quarterly%20Review.pdf" in response.headers["content-disposition"]
    assert response.content.startswith(b"%PDF")


def test_websocket_sends_final_status(client, deck, jobs):
    job = jobs.create("deck-1", "pptx")
    jobs.transition(job.id, ExportJobStatus.PROCESSING)
    jobs.transition(job.id, ExportJobStatus.COMPLETED, result_url="/files/x.pptx")

    with client.websocket_connect(f"/ws/exports/{job.id}") as websocket:
        frame = websocket.receive_json()
        assert frame["status"] == "completed"
        assert frame["fileUrl"] == "/files/x.pptx"
        with pytest.raises(WebSocketDisconnect):
            websocket.receive_json()


def test_websocket_follows_status_changes(client, deck, jobs):
    job = jobs.create("deck-1", "pptx")

    with client.websocket_connect(f"/ws/exports/{job.id}") as websocket:
        assert websocket.receive_json()["status"] == "queued"

        websocket.send_text("ping")
        assert websocket.receive_text() == "pong"

        jobs.transition(job.id, ExportJobStatus.PROCESSING)
        assert websocket.receive_json()["status"] == "processing"

        jobs.transition(job.id, ExportJobStatus.FAILED, error_code="STALE_JOB", error_message="Too slow")
        frame = websocket.receive_json()
        assert frame["status"] == "failed"
        assert frame["error"]["code"] == "STALE_JOB"


def test_websocket_unknown_job(client):
    with client.websocket_connect("/ws/exports/nope") as websocket:
        assert websocket.receive_json()["error"]["code"] == "NOT_FOUND"
        with pytest.raises(WebSocketDisconnect):
            websocket.receive_json()


def test_websocket_other_workspace(client, deck, jobs):
    job = jobs.create("deck-1", "pptx")

    with client.websocket_connect(f"/ws/exports/{job.id}", headers={"X-Workspace-Id": "ws_other"}) as websocket:
        assert websocket.receive_json()["error"]["code"] == "NOT_FOUND"
        with pytest.raises(WebSocketDisconnect):
            websocket.receive_json()

    jobs.transition(job.id, ExportJobStatus.PROCESSING)
    jobs.transition(job.id, ExportJobStatus.COMPLETED, result_url="/files/x.pptx")
    with client.websocket_connect(f"/ws/exports/{job.id}", headers={"X-Workspace-Id": "ws_default"}) as websocket:
        assert websocket.receive_json()["status"] == "completed"
