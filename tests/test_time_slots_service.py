"""
Unit tests for Time Slots Service.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.time_slots_service import app
from shared.database import get_db
from shared.models import Reservation


@pytest.fixture(scope="function")
def client(override_get_db):
    """Create a test client."""
    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "time_slots"


def test_touching_slots_are_allowed(client, auth_headers_admin):
    first = client.post("/time-slots", json={"start_time": "12:00", "end_time": "14:00"}, headers=auth_headers_admin)
    second = client.post("/time-slots", json={"start_time": "14:00", "end_time": "16:00"}, headers=auth_headers_admin)

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["ordinal"] == 1
    assert second.json()["ordinal"] == 2


def test_overlapping_slot_conflicts(client, auth_headers_admin, test_slot):
    response = client.post("/time-slots", json={"start_time": "19:00", "end_time": "21:00"}, headers=auth_headers_admin)
    assert response.status_code == 409
    assert response.json()["error"] == "SchedulingConflict"


def test_slot_inside_another_conflicts(client, auth_headers_admin):
    client.post("/time-slots", json={"start_time": "10:00", "end_time": "18:00"}, headers=auth_headers_admin)
    response = client.post("/time-slots", json={"start_time": "12:00", "end_time": "13:00"}, headers=auth_headers_admin)
    assert response.status_code == 409


def test_empty_or_inverted_range_rejected(client, auth_headers_admin):
    response = client.post("/time-slots", json={"start_time": "14:00", "end_time": "14:00"}, headers=auth_headers_admin)
    assert response.status_code == 400
    response = client.post("/time-slots", json={"start_time": "16:00", "end_time": "14:00"}, headers=auth_headers_admin)
    assert response.status_code == 400


def test_bad_time_format_rejected(client, auth_headers_admin):
    response = client.post("/time-slots", json={"start_time": "noon", "end_time": "14:00"}, headers=auth_headers_admin)
    assert response.status_code == 400
    assert response.json()["field"] == "start_time"


def test_client_cannot_create(client, auth_headers_client):
    response = client.post("/time-slots", json={"start_time": "08:00", "end_time": "09:00"}, headers=auth_headers_client)
    assert response.status_code == 403


def test_list_ordered_by_ordinal(client, db, auth_headers_client, auth_headers_admin):
    client.post("/time-slots", json={"start_time": "18:00", "end_time": "20:00", "ordinal": 3}, headers=auth_headers_admin)
    client.post("/time-slots", json={"start_time": "12:00", "end_time": "14:00", "ordinal": 1}, headers=auth_headers_admin)

    response = client.get("/time-slots", headers=auth_headers_client)
    assert response.status_code == 200
    assert [s["ordinal"] for s in response.json()["data"]] == [1, 3]


def test_move_slot_rechecks_overlap(client, auth_headers_admin, test_slot):
    other = client.post("/time-slots", json={"start_time": "12:00", "end_time": "14:00"}, headers=auth_headers_admin).json()

    response = client.patch(f"/time-slots/{other['id']}", json={"end_time": "18:30"}, headers=auth_headers_admin)
    assert response.status_code == 409

    response = client.patch(f"/time-slots/{other['id']}", json={"end_time": "18:00"}, headers=auth_headers_admin)
    assert response.status_code == 200
    assert response.json()["end_time"] == "18:00:00"


def test_put_replaces_slot(client, auth_headers_admin, test_slot):
    response = client.put(
        f"/time-slots/{test_slot.id}",
        json={"start_time": "08:00", "end_time": "10:00", "ordinal": 5},
        headers=auth_headers_admin
    )
    assert response.status_code == 200
    assert response.json()["ordinal"] == 5
    assert response.json()["start_time"] == "08:00:00"


def test_restore_refused_when_range_taken(client, auth_headers_admin, test_slot):
    assert client.delete(f"/time-slots/{test_slot.id}", headers=auth_headers_admin).status_code == 200
    assert client.post("/time-slots", json={"start_time": "19:00", "end_time": "21:00"}, headers=auth_headers_admin).status_code == 201

    response = client.patch(f"/time-slots/{test_slot.id}/restore", headers=auth_headers_admin)
    assert response.status_code == 409


def test_inactive_slot_hidden_from_clients(client, auth_headers_admin, auth_headers_client, test_slot):
    client.delete(f"/time-slots/{test_slot.id}", headers=auth_headers_admin)

    assert client.get(f"/time-slots/{test_slot.id}", headers=auth_headers_client).status_code == 404
    response = client.get(f"/time-slots/{test_slot.id}", headers=auth_headers_admin)
    assert response.status_code == 200
    assert response.json()["is_active"] is False


def test_available_slots(client, db, auth_headers_client, auth_headers_employee, client_user, test_hall, test_slot, future_date):
    free = client.post(
        "/time-slots", json={"start_time": "12:00", "end_time": "14:00"},
        headers=auth_headers_employee
    ).json()
    db.add(Reservation(
        client_id=client_user.id, hall_id=test_hall.id, time_slot_id=test_slot.id,
        date=future_date, start_time=test_slot.start_time, end_time=test_slot.end_time,
        state="PENDING"
    ))
    db.commit()

    response = client.get(
        f"/time-slots/available?date={future_date.isoformat()}&hall_id={test_hall.id}",
        headers=auth_headers_client
    )
    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == [free["id"]]


def test_available_slots_unknown_hall(client, auth_headers_client, future_date):
    response = client.get(
        f"/time-slots/available?date={future_date.isoformat()}&hall_id=999",
        headers=auth_headers_client
    )
    assert response.status_code == 404
    assert response.json()["field"] == "hall_id"
