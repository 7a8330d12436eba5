"""API tests: processing endpoints, progress polling, metrics and WebSocket."""

import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.main import create_app
from app.services.pipeline import running_job_count

POLL_TIMEOUT = 10.0


@pytest.fixture
def client(app_settings, media_tool):
    app = create_app(app_settings, media_tool=media_tool)
    with TestClient(app) as test_client:
        yield test_client


def place_in_inbox(settings, name: str = "clip.mp4", size: int = 4096) -> None:
    settings.inbox_dir.mkdir(parents=True, exist_ok=True)
    (settings.inbox_dir / name).write_bytes(b"\x00" * size)


def wait_for_terminal(client: TestClient, progress_url: str) -> dict:
    deadline = time.monotonic() + POLL_TIMEOUT
    while time.monotonic() < deadline:
        body = client.get(progress_url).json()
        # Metrics and audit are recorded after the terminal state is set
        if body["status"] in ("complete", "error") and running_job_count() == 0:
            return body
        time.sleep(0.02)
    raise AssertionError(f"Upload did not finish: {body}")


class TestHealth:
    def test_health(self, client) -> None:
        assert client.get("/health").json() == {"status": "ok"}

    def test_tools_available(self, client) -> None:
        body = client.get("/health/tools").json()
        assert body["status"] == "ok"
        assert "ffmpeg" in body["tools"]

    def test_tools_missing(self, client, media_tool) -> None:
        media_tool.fail_verify = True
        response = client.get("/health/tools")
        assert response.status_code == 503


class TestProcessEndpoint:
    """POST /api/videos/process schedules a background job."""

    def test_full_flow(self, client, app_settings) -> None:
        place_in_inbox(app_settings)

        response = client.post(
            "/api/videos/process",
            json={"filename": "clip.mp4", "title": "My Clip", "is_public": True},
        )

        assert response.status_code == 202
        body = response.json()
        assert body["slug"].startswith("my-clip-")
        assert body["progress_url"] == f"/api/videos/upload/{body['upload_id']}/progress"
        assert not (app_settings.inbox_dir / "clip.mp4").exists()

        final = wait_for_terminal(client, body["progress_url"])
        assert final["status"] == "complete"
        assert final["progress"] == 100
        assert final["metadata"]["qualities"] == ["720p", "480p", "360p"]

        video_dir = app_settings.videos_dir / "public" / body["slug"]
        assert (video_dir / "master.m3u8").exists()
        assert not (app_settings.temp_dir / f"{body['upload_id']}.tmp").exists()

        uploads = client.get("/api/videos/uploads").json()
        assert [u["upload_id"] for u in uploads] == [body["upload_id"]]

        metrics = client.get("/api/videos/metrics").json()
        assert metrics["successful_uploads"] == 1
        assert metrics["success_rate"] == 100.0
        assert metrics["active_uploads"] == 0

        detailed = client.get("/api/videos/metrics/detailed").json()
        assert "hls_transcoding" in detailed["stage_timings"]
        assert set(detailed["quality_stats"]) == {"720p", "480p", "360p"}

        audit = client.get("/api/videos/audit", params={"upload_id": body["upload_id"]}).json()
        assert [e["event_type"] for e in audit] == [
            "upload_started",
            "processing_started",
            "processing_completed",
        ]

    def test_failed_processing_is_visible_through_polling(
        self, client, app_settings, media_tool
    ) -> None:
        media_tool.fail_validate = True
        place_in_inbox(app_settings)

        body = client.post(
            "/api/videos/process",
            json={"filename": "clip.mp4", "title": "Broken"},
        ).json()

        final = wait_for_terminal(client, body["progress_url"])
        assert final["status"] == "error"
        assert final["error"].startswith("Validation failed: ")

    def test_missing_file(self, client) -> None:
        response = client.post(
            "/api/videos/process", json={"filename": "nope.mp4", "title": "x"}
        )
        assert response.status_code == 404

    def test_unsupported_extension(self, client, app_settings) -> None:
        place_in_inbox(app_settings, "notes.txt")
        response = client.post(
            "/api/videos/process", json={"filename": "notes.txt", "title": "x"}
        )
        assert response.status_code == 400

    def test_path_traversal_rejected(self, client) -> None:
        response = client.post(
            "/api/videos/process", json={"filename": "../secret.mp4", "title": "x"}
        )
        assert response.status_code == 400

    def test_file_too_large(self, client, app_settings) -> None:
        app_settings.max_file_size = 100
        place_in_inbox(app_settings, size=101)

        response = client.post(
            "/api/videos/process", json={"filename": "clip.mp4", "title": "x"}
        )

        assert response.status_code == 413
        assert (app_settings.inbox_dir / "clip.mp4").exists()

    def test_empty_title_rejected(self, client, app_settings) -> None:
        place_in_inbox(app_settings)
        response = client.post(
            "/api/videos/process", json={"filename": "clip.mp4", "title": ""}
        )
        assert response.status_code == 422


class TestProgressEndpoint:
    def test_unknown_upload(self, client) -> None:
        assert client.get("/api/videos/upload/missing/progress").status_code == 404

    def test_falls_back_to_database(self, client, app_settings) -> None:
        place_in_inbox(app_settings)
        body = client.post(
            "/api/videos/process", json={"filename": "clip.mp4", "title": "x"}
        ).json()
        wait_for_terminal(client, body["progress_url"])

        tracker = client.app.state.progress_tracker
        client.portal.call(tracker.remove, body["upload_id"])

        fallback = client.get(body["progress_url"]).json()
        assert fallback["status"] == "complete"
        assert fallback["progress"] == 100
        assert fallback["slug"] == body["slug"]


class TestAuditEndpoint:
    def test_limit(self, client, app_settings) -> None:
        place_in_inbox(app_settings)
        body = client.post(
            "/api/videos/process", json={"filename": "clip.mp4", "title": "x"}
        ).json()
        wait_for_terminal(client, body["progress_url"])

        entries = client.get("/api/videos/audit", params={"limit": 1}).json()

        assert len(entries) == 1
        assert entries[0]["event_type"] == "processing_completed"


class TestProgressWebSocket:
    def test_unknown_upload_closes_with_4004(self, client) -> None:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/missing") as ws:
                ws.receive_json()

        assert exc_info.value.code == 4004

    def test_finished_upload_sends_snapshot_and_closes(self, client, app_settings) -> None:
        place_in_inbox(app_settings)
        body = client.post(
            "/api/videos/process", json={"filename": "clip.mp4", "title": "x"}
        ).json()
        wait_for_terminal(client, body["progress_url"])

        with client.websocket_connect(f"/ws/{body['upload_id']}") as ws:
            snapshot = ws.receive_json()
            assert snapshot["status"] == "complete"
            assert snapshot["upload_id"] == body["upload_id"]
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()
