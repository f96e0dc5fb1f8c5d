import sys
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.append(str(Path(__file__).resolve().parents[1]))

from backend.app import create_app
from backend.application import get_detection_service, reset_detection_state
from backend.core.errors import ConfigurationError
from backend.infrastructure import (
    HttpInferenceClient,
    NoOpInferenceClient,
    configure_inference_client,
    get_inference_client,
)


@pytest.fixture(autouse=True)
def reset_state():
    reset_detection_state()
    yield
    reset_detection_state()


@pytest.fixture()
def client(monkeypatch):
    monkeypatch.setenv("DETECTION_TICK_SECONDS", "0.01")
    monkeypatch.delenv("APEX_REFERENCE_PATH", raising=False)
    monkeypatch.delenv("DETECTION_INFERENCE_URL", raising=False)
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client


def _poll_until_finished(client: TestClient, job_id: str, timeout: float = 5.0) -> list[dict]:
    deadline = time.monotonic() + timeout
    bodies: list[dict] = []
    while True:
        response = client.get(f"/api/detection/{job_id}/status")
        assert response.status_code == 200
        body = response.json()
        bodies.append(body)
        if body["overall"] != "running":
            return bodies
        assert time.monotonic() < deadline, "detection did not finish in time"
        time.sleep(0.02)


def test_health_and_landing(client):
    assert client.get("/api/health").json() == {"ok": True, "service": "apex-detection"}
    assert client.get("/").json()["health"] == "/api/health"


def test_start_requires_job_id(client):
    response = client.post("/api/detection/start", json={"reportKeys": ["period_end_soi"]})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing jobId"


def test_start_rejects_non_list_report_keys(client):
    response = client.post("/api/detection/start", json={"jobId": "J-1", "reportKeys": "period_end_soi"})

    assert response.status_code == 400


def test_status_of_unknown_job_is_404(client):
    response = client.get("/api/detection/J-missing/status")

    assert response.status_code == 404
    assert response.json()["detail"] == "Unknown jobId"


def test_detection_run_over_uploaded_files(client):
    service = get_detection_service()
    service.register_uploads(
        "J-100",
        [
            {
                "originalName": "Period End SOI.xlsx",
                "storedName": "1700000000000_Period_End_SOI.xlsx",
                "size": 2048,
                "mimeType": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            }
        ],
    )

    response = client.post(
        "/api/detection/start",
        json={
            "jobId": "J-100",
            "reportKeys": ["period_end_soi", "purchases_and_sales_report"],
            "engagementId": "ENG-1001",
            "adminId": "ADM-001",
            "routineCodes": ["PE_RECON", "TRADE_TEST"],
        },
    )
    assert response.status_code == 200
    assert response.json() == {"ok": True, "jobId": "J-100", "started": True}

    again = client.post("/api/detection/start", json={"jobId": "J-100", "reportKeys": ["period_end_soi"]})
    assert again.json()["already"] is True

    bodies = _poll_until_finished(client, "J-100")
    final = bodies[-1]

    done = [body["progress"]["done"] for body in bodies]
    assert done == sorted(done)
    assert all(body["progress"]["total"] == 2 for body in bodies)

    assert final["overall"] == "success"
    assert final["progress"] == {"done": 2, "total": 2}
    soi, pands = final["reports"]
    assert soi["reportKey"] == "period_end_soi"
    assert soi["fieldsMapped"] == soi["located"] == "yes"
    assert soi["attributesMapped"] == soi["mapped"] == "yes"
    assert soi["locatedSource"] == "db"
    assert soi["mappedCount"] == soi["totalFields"] == 5
    assert pands["fieldsMapped"] == "no"
    assert pands["attributesMapped"] == "no"
    assert pands["locatedSource"] is None
    assert final["outcome"] == {
        "fieldsAnyNo": True,
        "attributesAnyNo": True,
        "fieldsAllYes": False,
        "attributesAllYes": False,
    }
    assert final["nextStep"] == "field_selection"

    after = client.post("/api/detection/start", json={"jobId": "J-100", "reportKeys": []})
    assert after.json() == {"ok": True, "jobId": "J-100", "started": True, "already": True}


def test_empty_report_list_completes_at_once(client):
    response = client.post("/api/detection/start", json={"jobId": "J-empty"})

    assert response.json() == {"ok": True, "jobId": "J-empty", "started": True, "empty": True}
    status = client.get("/api/detection/J-empty/status").json()
    assert status["overall"] == "success"
    assert status["progress"] == {"done": 0, "total": 0}
    assert status["reports"] == []


def test_invalid_tick_setting_is_rejected(monkeypatch):
    monkeypatch.setenv("DETECTION_TICK_SECONDS", "fast")
    with pytest.raises(ConfigurationError):
        create_app()


SOI_UPLOAD = {
    "originalName": "Period End SOI - December.xlsx",
    "storedName": "1700000000000_Period_End_SOI_-_December.xlsx",
    "size": 4096,
    "mimeType": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def test_files_registered_over_http_feed_detection(client):
    response = client.post("/api/detection/J-200/files", json={"files": [SOI_UPLOAD]})
    assert response.status_code == 200
    assert response.json()["files"][0]["originalName"] == SOI_UPLOAD["originalName"]

    listed = client.get("/api/detection/J-200/files").json()
    assert [item["storedName"] for item in listed["files"]] == [SOI_UPLOAD["storedName"]]

    client.post("/api/detection/start", json={"jobId": "J-200", "reportKeys": ["period_end_soi"]})
    final = _poll_until_finished(client, "J-200")[-1]

    report = final["reports"][0]
    assert report["fieldsMapped"] == "yes"
    assert report["attributesMapped"] == "yes"
    assert report["locatedSource"] == "db"
    assert final["nextStep"] == "complete"


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"files": []},
        {"files": "Period End SOI.xlsx"},
        {"files": [{"storedName": "no-original-name.xlsx"}]},
        {"files": [{"originalName": "a.xlsx", "size": -1}]},
    ],
)
def test_register_files_rejects_bad_payloads(client, payload):
    response = client.post("/api/detection/J-bad/files", json=payload)

    assert response.status_code == 400
    assert client.get("/api/detection/J-bad/files").json()["files"] == []


def test_list_jobs_returns_snapshots_oldest_first(client):
    client.post("/api/detection/start", json={"jobId": "J-first"})
    client.post("/api/detection/start", json={"jobId": "J-second"})

    body = client.get("/api/detection").json()

    assert body["ok"] is True
    assert [job["jobId"] for job in body["jobs"]] == ["J-first", "J-second"]
    assert all(job["overall"] == "success" for job in body["jobs"])


class ClosingClient:
    def __init__(self) -> None:
        self.closed = False

    def infer(self, payload):
        return None

    def close(self) -> None:
        self.closed = True


def test_shutdown_closes_configured_inference_client(monkeypatch):
    monkeypatch.delenv("DETECTION_INFERENCE_URL", raising=False)
    app = create_app()
    inference = ClosingClient()
    configure_inference_client(inference)

    with TestClient(app) as test_client:
        assert test_client.get("/api/health").status_code == 200
        assert inference.closed is False

    assert inference.closed is True
    assert isinstance(get_inference_client(), NoOpInferenceClient)


def test_shutdown_closes_http_inference_pool(monkeypatch):
    monkeypatch.setenv("DETECTION_INFERENCE_URL", "https://inference.example.test/v1/detect")
    app = create_app()
    inference = get_inference_client()
    assert isinstance(inference, HttpInferenceClient)

    with TestClient(app):
        assert inference._client.is_closed is False

    assert inference._client.is_closed is True
