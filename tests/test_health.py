"""
API tests: health, connection, cache controls, category data, record actions, and the action proxy.
"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from bayboard.main import create_app

from conftest import BACKEND_URL, FakeBackend


def make_client(backend, **overrides):
    options = {"backend_url": BACKEND_URL, "max_retries": 0}
    options.update(overrides)
    app = create_app(
        Settings(**options),
        client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
        start_background=False,
    )
    return TestClient(app)


@pytest.fixture
def client(backend):
    with make_client(backend) as test_client:
        yield test_client


# ============================================================
# HEALTH / VERSION
# ============================================================

def test_health_endpoint_returns_200(client):
    """Test that /health returns HTTP 200"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_endpoint_returns_ok_status(client):
    """Test that /health returns status: ok and the backend reading"""
    data = client.get("/health").json()
    assert data["status"] == "ok"
    assert data["backend"] == {"isHealthy": True, "isOnline": True}


def test_version_endpoint(client):
    data = client.get("/version").json()
    assert data["name"] == "Bay Board"
    assert data["full"] == f"Bay Board {data['version']}"


def test_app_starts_with_background_tasks():
    """Lifespan with monitoring and preload starts and shuts down cleanly"""
    app = create_app(
        Settings(backend_url=BACKEND_URL),
        client=httpx.AsyncClient(transport=httpx.MockTransport(FakeBackend())),
    )
    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 200


# ============================================================
# CONNECTION
# ============================================================

def test_connection_info(client):
    data = client.get("/api/connection").json()
    assert data["healthy"] is True
    assert data["successRate"] == 100
    assert data["state"]["consecutiveFailures"] == 0


def test_offline_notification(client):
    """Platform offline flips the reading immediately"""
    response = client.post("/api/connection/offline")
    assert response.status_code == 200
    assert response.json()["isOnline"] is False

    backend_status = client.get("/health").json()["backend"]
    assert backend_status["isOnline"] is False
    assert backend_status["reason"] == "No internet connection"

    assert client.post("/api/connection/online").json()["isOnline"] is True


def test_unknown_connection_event_returns_404(client):
    assert client.post("/api/connection/reboot").status_code == 404


# ============================================================
# CATEGORY DATA
# ============================================================

def test_category_data(client, backend):
    backend.script("getBranches", {"success": True, "data": [{"number": 12}]})

    response = client.get("/api/data/branches")

    assert response.status_code == 200
    assert response.json() == {"category": "branches", "data": [{"number": 12}]}


def test_category_data_is_cached(client, backend):
    client.get("/api/data/pickers")
    client.get("/api/data/pickers")
    assert backend.calls("getPickers") == 1


def test_unknown_category_returns_404(client):
    assert client.get("/api/data/forklifts").status_code == 404


def test_backend_rejection_maps_to_502(client, backend):
    backend.script("getTrucks", 404)

    response = client.get("/api/data/trucks")

    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "http"
    assert body["status"] == 404


def test_unreachable_backend_maps_to_502(client, backend):
    backend.script("getPickers", httpx.ConnectError)

    response = client.get("/api/data/pickers")

    assert response.status_code == 502
    assert response.json()["error"] == "network"


def test_missing_backend_url_maps_to_500(backend):
    with make_client(backend, backend_url=None) as test_client:
        response = test_client.get("/api/data/branches")

    assert response.status_code == 500
    assert response.json()["error"] == "config"
    assert backend.calls() == 0


# ============================================================
# CACHE CONTROLS
# ============================================================

def test_cache_status_and_clear(client):
    client.get("/api/data/branches")

    status = client.get("/api/cache/status").json()
    assert status["branches"]["cached"] is True
    assert status["trucks"] == {"cached": False}

    assert client.delete("/api/cache").json() == {"cleared": 1}
    assert client.get("/api/cache/status").json()["branches"] == {"cached": False}


def test_cache_refresh(client, backend):
    backend.script("getTrucks", 500)

    data = client.post("/api/cache/refresh").json()

    assert data["refreshed"] is True
    assert data["failed"] == ["trucks"]
    assert len(data["succeeded"]) == 5

    client.post("/api/cache/refresh", params={"force": "true"})
    assert backend.calls("getBranches") == 2


def test_cache_stats(client):
    client.get("/api/data/branches")
    client.get("/api/data/branches")

    data = client.get("/api/cache/stats").json()
    assert data["cache"]["hits_fresh"] == 1
    assert data["cache"]["misses"] == 1
    assert data["executor"]["attempts"] == 1


# ============================================================
# ACTION PROXY
# ============================================================

def test_proxy_get_forwards_action(client, backend):
    backend.script("getStageRecords", {"success": True, "data": [{"rowIndex": 3}]})

    response = client.get("/api/proxy", params={"action": "getStageRecords", "date": "2024-03-04"})

    assert response.status_code == 200
    assert response.json()["data"] == [{"rowIndex": 3}]
    params = backend.requests[-1].url.params
    assert params["action"] == "getStageRecords"
    assert params["date"] == "2024-03-04"


def test_proxy_get_requires_action(client):
    response = client.get("/api/proxy")
    assert response.status_code == 400
    assert response.json() == {"error": "Action parameter required"}


def test_proxy_post_forwards_body(client, backend):
    response = client.post(
        "/api/proxy",
        json={"action": "updateTruckStatus", "truckId": "T7", "status": "departed"},
    )

    assert response.status_code == 200
    params = backend.requests[-1].url.params
    assert params["action"] == "updateTruckStatus"
    assert params["truckId"] == "T7"


def test_proxy_post_rejects_bad_body(client):
    assert client.post("/api/proxy", content=b"not json").status_code == 400
    assert client.post("/api/proxy", json={"truckId": "T7"}).status_code == 400


def test_application_error_maps_to_422(client, backend):
    backend.script("verifyPin", {"success": False, "error": "Invalid PIN"})

    response = client.post("/api/proxy", json={"action": "verifyPin", "pin": "0000"})

    assert response.status_code == 422
    assert response.json()["message"] == "Invalid PIN"


# ============================================================
# STAGE RECORDS / SUMMARY / PIN
# ============================================================

def test_stage_records_for_day(client, backend):
    backend.script("getStageRecords", {"success": True, "data": [{"rowIndex": 3}]})

    response = client.get("/api/stage-records", params={"date": "2024-03-04"})

    assert response.status_code == 200
    assert response.json() == {"data": [{"rowIndex": 3}]}
    assert backend.requests[-1].url.params["date"] == "2024-03-04"


def test_create_stage_record_drops_unset_fields(client, backend):
    record = {
        "pickerID": 7,
        "pickerName": "Sam",
        "branchNumber": 12,
        "branchName": "Riverside",
        "pallets": 3,
    }

    response = client.post("/api/stage-records", json=record)

    assert response.status_code == 200
    params = backend.requests[-1].url.params
    assert params["action"] == "addStageRecord"
    assert json.loads(params["record"]) == {**record, "boxes": 0, "rolls": 0}


def test_create_stage_record_validates_body(client, backend):
    response = client.post("/api/stage-records", json={"pickerID": "seven"})
    assert response.status_code == 422
    assert backend.calls() == 0


def test_update_stage_record_field(client, backend):
    response = client.patch("/api/stage-records/12", json={"field": "pallets", "value": 4})

    assert response.status_code == 200
    params = backend.requests[-1].url.params
    assert params["action"] == "updateStageRecordField"
    assert params["rowIndex"] == "12"
    assert params["field"] == "pallets"


def test_delete_stage_record_rejection_maps_to_422(client, backend):
    backend.script("deleteStageRecord", {"success": False, "error": "Row 12 not found"})

    response = client.delete("/api/stage-records/12")

    assert response.status_code == 422
    assert response.json()["message"] == "Row 12 not found"


def test_daily_summary_for_day(client, backend):
    backend.script("getDailySummary", {"success": True, "totals": {"pallets": 41}})

    response = client.get("/api/summary", params={"date": "2024-03-04"})

    assert response.json() == {"success": True, "totals": {"pallets": 41}}
    assert backend.requests[-1].url.params["date"] == "2024-03-04"


def test_daily_summary_rejects_bad_date(client):
    assert client.get("/api/summary", params={"date": "yesterday"}).status_code == 422


def test_verify_pin(client, backend):
    backend.script("verifyPin", {"success": True, "valid": True})

    response = client.post("/api/pin/verify", json={"pin": "423323"})

    assert response.json() == {"valid": True}
    assert backend.requests[-1].url.params["pin"] == "423323"
