# tests/test_api.py

import pytest
from fastapi.testclient import TestClient

from glowroutine.api.routes import get_registry
from glowroutine.core.config import Settings
from glowroutine.services.registry import RoutineRegistry
from glowroutine.stores.local import LocalKeyValueStore
from main import app

BASE = "/api/v1/routine"
MONDAY = "2024-01-01"


@pytest.fixture
def client(sql_engine):
    settings = Settings(SEED_DEFAULT_ROUTINE=False, REORDER_DEBOUNCE_MS=0, LOCAL_STORE_PATH=None)
    registry = RoutineRegistry(settings, sql_engine, local_kv=LocalKeyValueStore())
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _add(client, name, headers=None, **fields):
    body = {"name": name, "schedule": {"schedule_type": "weekly", "days": ["monday"]}, **fields}
    response = client.post(f"{BASE}/steps", json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["version"] == "1.0.0"


def test_create_and_list_steps(client):
    cleanser = _add(client, "Cleanser")
    night = _add(client, "Night Cream", time_of_day="evening")

    response = client.get(f"{BASE}/steps")

    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [cleanser["id"], night["id"]]
    assert cleanser["schedule"] == {"schedule_type": "weekly", "days": ["monday"]}


@pytest.mark.parametrize(
    "schedule",
    [
        {"schedule_type": "cycle", "cycle_length": 1, "cycle_days": [1], "cycle_start_date": MONDAY},
        {"schedule_type": "cycle", "cycle_length": 4, "cycle_days": [5], "cycle_start_date": MONDAY},
        {"schedule_type": "interval", "interval_days": 0, "interval_start_date": MONDAY},
        {"schedule_type": "interval", "interval_days": 2},
        {"schedule_type": "monthly"},
    ],
)
def test_invalid_schedule_is_rejected(client, schedule):
    response = client.post(f"{BASE}/steps", json={"name": "Peel", "schedule": schedule})
    assert response.status_code == 422


def test_today_and_progress(client):
    morning = _add(client, "Cleanser")
    _add(client, "Night Cream", time_of_day="evening")
    _add(client, "Lip Balm", time_of_day="both")

    today = client.get(f"{BASE}/today", params={"time_of_day": "morning", "date": MONDAY}).json()
    assert [s["name"] for s in today] == ["Cleanser", "Lip Balm"]
    assert client.get(f"{BASE}/today", params={"date": "2024-01-02"}).json() == []

    client.post(f"{BASE}/steps/{morning['id']}/toggle", json={"date": MONDAY, "product_used": "Gel"})

    progress = client.get(f"{BASE}/progress", params={"date": MONDAY}).json()
    assert progress == {"completed": 1, "total": 3}
    [first, *_] = client.get(f"{BASE}/today", params={"date": MONDAY}).json()
    assert (first["is_completed"], first["product_used"]) == (True, "Gel")


def test_toggle_twice_returns_null(client):
    step = _add(client, "Cleanser")
    url = f"{BASE}/steps/{step['id']}/toggle"

    first = client.post(url, json={"date": MONDAY})
    second = client.post(url, json={"date": MONDAY})

    assert first.json()["status"] == "completed"
    assert first.json()["date"] == MONDAY
    assert second.status_code == 200
    assert second.json() is None


def test_skip_and_finish(client):
    a = _add(client, "A")
    _add(client, "B")
    _add(client, "C", time_of_day="evening")

    skip = client.post(f"{BASE}/steps/{a['id']}/skip", json={"date": MONDAY})
    assert skip.json()["status"] == "skipped"

    finish = client.post(f"{BASE}/finish", json={"time_of_day": "morning", "date": MONDAY})
    assert finish.json() == {"skipped": 1}

    today = client.get(f"{BASE}/today", params={"date": MONDAY}).json()
    assert {s["name"]: s["is_skipped"] for s in today} == {"A": True, "B": True, "C": False}


def test_unknown_step_returns_404(client):
    assert client.post(f"{BASE}/steps/missing/toggle").status_code == 404
    assert client.post(f"{BASE}/steps/missing/skip").status_code == 404
    assert client.patch(f"{BASE}/steps/missing", json={"name": "x"}).status_code == 404
    assert client.delete(f"{BASE}/steps/missing").status_code == 404


def test_patch_can_unlink_product(client):
    step = _add(client, "Serum", product_id="p1", notes="two drops")

    response = client.patch(f"{BASE}/steps/{step['id']}", json={"product_id": None})

    assert response.status_code == 200
    assert response.json()["product_id"] is None
    assert response.json()["notes"] == "two drops"


def test_delete_step(client):
    step = _add(client, "Serum")
    client.post(f"{BASE}/steps/{step['id']}/toggle", json={"date": MONDAY})

    assert client.delete(f"{BASE}/steps/{step['id']}").status_code == 204
    assert client.get(f"{BASE}/steps").json() == []
    assert client.get(f"{BASE}/progress", params={"date": MONDAY}).json() == {"completed": 0, "total": 0}


def test_reorder_steps(client):
    a = _add(client, "A")
    b = _add(client, "B")
    c = _add(client, "C")

    response = client.put(f"{BASE}/steps/order", json={"step_ids": [c["id"], a["id"]]})

    assert response.status_code == 200
    ordered = client.get(f"{BASE}/steps").json()
    assert [s["id"] for s in ordered] == [c["id"], a["id"], b["id"]]


def test_user_header_selects_database_scope(client):
    _add(client, "Local Cleanser")
    _add(client, "Alice Cleanser", headers={"X-User-Id": "alice"})

    local = client.get(f"{BASE}/steps").json()
    alice = client.get(f"{BASE}/steps", headers={"X-User-Id": "alice"}).json()
    bob = client.get(f"{BASE}/steps", headers={"X-User-Id": "bob"}).json()

    assert [s["name"] for s in local] == ["Local Cleanser"]
    assert [(s["name"], s["user_id"]) for s in alice] == [("Alice Cleanser", "alice")]
    assert bob == []


def test_reload_returns_stored_steps(client):
    _add(client, "Cleanser", headers={"X-User-Id": "alice"})
    response = client.post(f"{BASE}/reload", headers={"X-User-Id": "alice"})
    assert [s["name"] for s in response.json()] == ["Cleanser"]
