import datetime as dt

import requests

from slotwatcher.models import AvailabilitySnapshot, CycleResult, Location, utcnow
from slotwatcher.status import StatusServer, create_app
from slotwatcher.store import AvailabilityStore

WINDOW = dt.timedelta(minutes=3)


def build_store() -> AvailabilityStore:
    return AvailabilityStore([
        Location(store_id="42", name="100 Main St"),
        Location(store_id="7", name="200 Oak Ave"),
    ])


def test_status_before_first_cycle_reports_degraded():
    client = create_app(build_store(), WINDOW).test_client()

    payload = client.get("/status").get_json()
    assert payload["healthy"] is False
    assert payload["lastCycle"] is None
    assert payload["lastSuccessAt"] is None
    assert [entry["id"] for entry in payload["locations"]] == ["42", "7"]
    assert all(entry["available"] is None for entry in payload["locations"])

    health = client.get("/healthz")
    assert health.status_code == 503
    assert health.get_json() == {"status": "degraded"}


def test_status_reports_snapshots_and_last_cycle():
    store = build_store()
    observed = utcnow()
    store.commit(AvailabilitySnapshot("42", True, observed, slot_count=2))
    store.record_cycle(
        CycleResult(started_at=observed,
                    finished_at=observed,
                    attempted=2,
                    succeeded=1,
                    failed=1,
                    transitions=1))
    client = create_app(store, WINDOW).test_client()

    payload = client.get("/status").get_json()

    assert payload["healthy"] is True
    assert payload["lastCycle"]["attempted"] == 2
    assert payload["lastCycle"]["succeeded"] == 1
    assert payload["lastCycle"]["failed"] == 1
    assert payload["lastCycle"]["transitions"] == 1
    first, second = payload["locations"]
    assert first == {
        "id": "42",
        "name": "100 Main St",
        "available": True,
        "slotCount": 2,
        "lastChecked": observed.isoformat(),
    }
    assert second["available"] is None
    assert client.get("/healthz").status_code == 200


def test_stale_cycle_turns_health_degraded():
    store = build_store()
    old = utcnow() - dt.timedelta(minutes=10)
    store.record_cycle(CycleResult(started_at=old, finished_at=old))
    client = create_app(store, WINDOW).test_client()

    assert client.get("/healthz").status_code == 503
    assert client.get("/status").get_json()["healthy"] is False


def test_single_location_lookup():
    store = build_store()
    client = create_app(store, WINDOW).test_client()

    assert client.get("/status/7").get_json()["name"] == "200 Oak Ave"
    assert client.get("/status/999").status_code == 404


def test_status_server_serves_in_background():
    store = build_store()
    now = utcnow()
    store.record_cycle(CycleResult(started_at=now, finished_at=now))
    server = StatusServer(create_app(store, WINDOW), host="127.0.0.1", port=0)
    server.start()
    try:
        response = requests.get(f"http://127.0.0.1:{server.port}/healthz", timeout=5)
    finally:
        server.stop()

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_availability_by_zip_lists_matching_stores():
    store = AvailabilityStore([
        Location(store_id="5512", name="100 Main St", zip_code="19103",
                 address="100 Main St", phone="(215) 555-0100"),
        Location(store_id="6020", name="9 Elm St", zip_code="19103",
                 address="9 Elm St"),
        Location(store_id="7", name="200 Oak Ave", zip_code="19104"),
    ])
    observed = utcnow()
    store.commit(AvailabilitySnapshot("5512", True, observed, slot_count=2))
    client = create_app(store, WINDOW).test_client()

    response = client.get("/availability/19103")

    assert response.status_code == 200
    assert response.get_json() == [
        {
            "id": "5512",
            "address": "100 Main St",
            "zip": "19103",
            "phone": "(215) 555-0100",
            "available": True,
            "lastChecked": observed.isoformat(),
        },
        {
            "id": "6020",
            "address": "9 Elm St",
            "zip": "19103",
            "phone": "",
            "available": None,
            "lastChecked": None,
        },
    ]
    assert client.get("/availability/90210").status_code == 404
