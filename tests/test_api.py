"""
HTTP tests for the FastAPI app in `main.py`.

The module-level services in `main` are swapped for ones backed by the
in-memory repositories from conftest, so no database is touched.
"""

import pytest
from fastapi.testclient import TestClient

import main
from models import CommandStatus

AUTH = {"x-device-id": "watch-1", "x-device-token": "secret-1"}
JPEG = b"\xff\xd8\xff\xe0fake-jpeg"


@pytest.fixture
def client(monkeypatch, device_svc, command_svc, telemetry_svc, environment_svc):
    monkeypatch.setattr(main, "device_svc", device_svc)
    monkeypatch.setattr(main, "command_svc", command_svc)
    monkeypatch.setattr(main, "telemetry_svc", telemetry_svc)
    monkeypatch.setattr(main, "environment_svc", environment_svc)
    return TestClient(main.app)


class TestHealth:
    def test_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_db_down(self, client, device_repo):
        device_repo.healthy = False
        assert client.get("/health").status_code == 500


class TestAuth:
    def test_missing_headers(self, client):
        response = client.get("/device/commands", params={"deviceId": "watch-1"})
        assert response.status_code == 401

    def test_unknown_device(self, client):
        headers = {"x-device-id": "ghost", "x-device-token": "x"}
        response = client.get("/device/commands", params={"deviceId": "ghost"}, headers=headers)
        assert response.status_code == 401
        assert response.json()["detail"] == "Unknown device"

    def test_disabled_device(self, client):
        headers = {"x-device-id": "watch-off", "x-device-token": "secret-off"}
        response = client.get("/device/commands", params={"deviceId": "watch-off"}, headers=headers)
        assert response.status_code == 403

    def test_wrong_token(self, client):
        headers = {"x-device-id": "watch-1", "x-device-token": "nope"}
        response = client.get("/device/commands", params={"deviceId": "watch-1"}, headers=headers)
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid device token"


class TestCommands:
    def test_device_id_must_match_header(self, client, command_repo):
        command_repo.enqueue("watch-1", "capture_environment", {})

        response = client.get("/device/commands", params={"deviceId": "watch-2"}, headers=AUTH)

        assert response.status_code == 400
        assert all(c.status == CommandStatus.PENDING for c in command_repo.commands.values())

    def test_claim_then_empty(self, client, command_repo):
        command = command_repo.enqueue("watch-1", "capture_environment", {"v": 1})

        first = client.get("/device/commands", params={"deviceId": "watch-1"}, headers=AUTH)
        second = client.get("/device/commands", params={"deviceId": "watch-1"}, headers=AUTH)

        body = first.json()["command"]
        assert body["id"] == command.id
        assert body["deviceId"] == "watch-1"
        assert body["status"] == "running"
        assert body["type"] == "capture_environment"
        assert body["payload"] == {"v": 1}
        assert body["startedAt"] is not None
        assert second.json() == {"command": None}


class TestTelemetry:
    def test_records_analysis(self, client):
        response = client.post("/device/telemetry/heart-rate", json={"bpm": 72, "spo2": 98}, headers=AUTH)

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["id"] == body["analysis"]["id"]
        assert body["analysis"]["primaryStatus"] == "normal"
        assert body["analysis"]["reason"] == "Within normal range."

    def test_spike_across_requests(self, client):
        client.post("/device/telemetry/heart-rate", json={"bpm": 90, "spo2": 98}, headers=AUTH)
        response = client.post("/device/telemetry/heart-rate", json={"bpm": 130, "spo2": 97}, headers=AUTH)

        analysis = response.json()["analysis"]
        assert analysis["flags"] == ["high", "spike"]
        assert analysis["primaryStatus"] == "critical"
        assert analysis["prevBpm"] == 90

    def test_non_numeric_body(self, client, telemetry_repo):
        response = client.post("/device/telemetry/heart-rate", json={"bpm": "fast"}, headers=AUTH)

        assert response.status_code == 400
        assert telemetry_repo.readings == []

    def test_out_of_range_integer_is_400(self, client, telemetry_repo):
        response = client.post(
            "/device/telemetry/heart-rate", json={"bpm": 10**400, "spo2": 98}, headers=AUTH
        )

        assert response.status_code == 400
        assert telemetry_repo.readings == []

    def test_store_failure_is_500(self, client, telemetry_repo, monkeypatch):
        def broken(*args):
            raise RuntimeError("connection refused")

        monkeypatch.setattr(telemetry_repo, "insert_reading", broken)

        response = client.post("/device/telemetry/heart-rate", json={"bpm": 72, "spo2": 98}, headers=AUTH)

        assert response.status_code == 500
        assert "connection refused" in response.json()["detail"]


class TestUploadImage:
    def test_upload_completes_command(self, client, command_repo):
        command = command_repo.enqueue("watch-1", "capture_environment", {})
        client.get("/device/commands", params={"deviceId": "watch-1"}, headers=AUTH)

        response = client.post(
            "/device/upload-image",
            files={"image": ("env.jpg", JPEG, "image/jpeg")},
            data={"commandId": command.id},
            headers=AUTH,
        )

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["commandId"] == command.id
        assert body["result"]["risk_level"] == "unknown"
        assert command_repo.commands[command.id].status == CommandStatus.COMPLETED
        assert command_repo.commands[command.id].result_ref == body["analysisId"]

    def test_missing_image(self, client):
        response = client.post("/device/upload-image", data={"commandId": "x"}, headers=AUTH)
        assert response.status_code == 400
        assert response.json()["detail"] == 'Missing image file field "image"'

    def test_png_rejected(self, client):
        response = client.post(
            "/device/upload-image",
            files={"image": ("env.png", b"\x89PNG", "image/png")},
            headers=AUTH,
        )
        assert response.status_code == 400


class TestDashboard:
    def test_shape(self, client):
        client.post("/device/telemetry/heart-rate", json={"bpm": 72, "spo2": 98}, headers=AUTH)
        client.post(
            "/device/upload-image",
            files={"image": ("env.jpg", JPEG, "image/jpeg")},
            headers=AUTH,
        )

        response = client.get("/device/dashboard", params={"deviceId": "watch-1"}, headers=AUTH)

        body = response.json()
        assert response.status_code == 200
        assert body["ok"] is True
        assert body["latest"]["bpm"] == 72
        assert len(body["history"]) == 1
        assert body["summary"]["count"] == 1
        assert body["summary"]["statusCounts"]["normal"] == 1
        assert body["summary"]["totalReadings"] == 1
        assert body["summary"]["normal"] == 1
        assert body["summary"]["warning"] == 0
        assert body["summary"]["critical"] == 0
        assert body["latestImage"]["result"]["risk_level"] == "unknown"

    def test_device_id_mismatch(self, client):
        response = client.get("/device/dashboard", params={"deviceId": "other"}, headers=AUTH)
        assert response.status_code == 400
