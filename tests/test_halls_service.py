"""
Unit tests for Halls Service.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.halls_service import app
from shared.database import get_db
from shared.models import Reservation


@pytest.fixture(scope="function")
def client(override_get_db):
    """Create a test client."""
    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


HALL = {
    "title": "Salon Verde",
    "address": "Av. Colon 500",
    "latitude": -31.41,
    "longitude": -64.18,
    "capacity": 80,
    "price": 2500.5
}


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "halls"}


def test_requires_token(client):
    response = client.get("/halls")
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


def test_invalid_token(client):
    response = client.get("/halls", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_create_hall_as_employee(client, auth_headers_employee):
    response = client.post("/halls", json=HALL, headers=auth_headers_employee)
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Salon Verde"
    assert data["price"] == 2500.5
    assert data["is_active"] is True


def test_create_hall_as_client_forbidden(client, auth_headers_client):
    response = client.post("/halls", json=HALL, headers=auth_headers_client)
    assert response.status_code == 403


def test_create_hall_validation(client, auth_headers_admin):
    response = client.post("/halls", json={**HALL, "price": -1}, headers=auth_headers_admin)
    assert response.status_code == 400
    assert response.json()["field"] == "price"

    response = client.post("/halls", json={"address": "x", "price": 1}, headers=auth_headers_admin)
    assert response.status_code == 400
    assert response.json()["field"] == "title"


def test_duplicate_hall_conflict(client, auth_headers_admin, test_hall):
    duplicate = {"title": "  SALON azul ", "address": "calle falsa   123", "price": 10}
    response = client.post("/halls", json=duplicate, headers=auth_headers_admin)
    assert response.status_code == 409
    assert response.json()["error"] == "DuplicateEntry"


def test_same_title_other_address_allowed(client, auth_headers_admin, test_hall):
    other = {"title": "Salon Azul", "address": "Otra calle 1", "price": 10}
    response = client.post("/halls", json=other, headers=auth_headers_admin)
    assert response.status_code == 201


def test_browse_halls(client, auth_headers_client, test_hall):
    response = client.get("/halls", headers=auth_headers_client)
    assert response.status_code == 200
    body = response.json()
    assert body["pagination"]["total"] == 1
    assert body["data"][0]["id"] == test_hall.id


def test_search_halls(client, auth_headers_client, test_hall):
    response = client.get("/halls?search=falsa", headers=auth_headers_client)
    assert response.json()["pagination"]["total"] == 1
    response = client.get("/halls?search=nothing-like-this", headers=auth_headers_client)
    assert response.json()["pagination"]["total"] == 0


def test_include_inactive_is_staff_only(client, db, auth_headers_client, auth_headers_employee, test_hall):
    test_hall.is_active = False
    db.commit()

    assert client.get("/halls", headers=auth_headers_client).json()["pagination"]["total"] == 0
    assert client.get("/halls?include_inactive=true", headers=auth_headers_client).status_code == 403

    response = client.get("/halls?include_inactive=true", headers=auth_headers_employee)
    assert response.status_code == 200
    assert response.json()["data"][0]["is_active"] is False


def test_get_hall(client, auth_headers_client, test_hall):
    response = client.get(f"/halls/{test_hall.id}", headers=auth_headers_client)
    assert response.status_code == 200
    assert response.json()["title"] == "Salon Azul"


def test_get_nonexistent_hall(client, auth_headers_client):
    response = client.get("/halls/99999", headers=auth_headers_client)
    assert response.status_code == 404


def test_put_and_patch_hall(client, auth_headers_admin, test_hall):
    response = client.put(f"/halls/{test_hall.id}", json=HALL, headers=auth_headers_admin)
    assert response.status_code == 200
    assert response.json()["title"] == "Salon Verde"


@pytest.mark.parametrize("field", ["title", "address", "price"])
def test_patch_hall_rejects_null_required_field(client, auth_headers_admin, test_hall, field):
    response = client.patch(f"/halls/{test_hall.id}", json={field: None}, headers=auth_headers_admin)
    assert response.status_code == 400
    assert response.json()["error"] == "ValidationError"
    assert response.json()["field"] == field


def test_patch_hall_clears_optional_field(client, auth_headers_admin, test_hall):
    response = client.patch(f"/halls/{test_hall.id}", json={"capacity": None}, headers=auth_headers_admin)
    assert response.status_code == 200
    assert response.json()["capacity"] is None

    response = client.patch(f"/halls/{test_hall.id}", json={"capacity": 120}, headers=auth_headers_admin)
    assert response.status_code == 200
    assert response.json()["capacity"] == 120
    assert response.json()["title"] == "Salon Verde"


def test_delete_and_restore_hall(client, auth_headers_employee, test_hall):
    response = client.delete(f"/halls/{test_hall.id}", headers=auth_headers_employee)
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    response = client.patch(f"/halls/{test_hall.id}/restore", headers=auth_headers_employee)
    assert response.status_code == 200
    assert response.json()["is_active"] is True


def test_delete_hall_with_pending_reservation(client, db, auth_headers_admin, client_user, test_hall, test_slot, future_date):
    db.add(Reservation(
        client_id=client_user.id, hall_id=test_hall.id, time_slot_id=test_slot.id,
        date=future_date, start_time=test_slot.start_time, end_time=test_slot.end_time,
        state="PENDING"
    ))
    db.commit()

    response = client.delete(f"/halls/{test_hall.id}", headers=auth_headers_admin)
    assert response.status_code == 409
    assert response.json()["error"] == "ReferencedByActiveReservation"


def test_available_halls(client, db, auth_headers_client, client_user, test_hall, test_slot, future_date):
    response = client.get(
        f"/halls/available?date={future_date.isoformat()}&time_slot_id={test_slot.id}",
        headers=auth_headers_client
    )
    assert [h["id"] for h in response.json()] == [test_hall.id]

    db.add(Reservation(
        client_id=client_user.id, hall_id=test_hall.id, time_slot_id=test_slot.id,
        date=future_date, start_time=test_slot.start_time, end_time=test_slot.end_time,
        state="PENDING"
    ))
    db.commit()

    response = client.get(
        f"/halls/available?date={future_date.isoformat()}&time_slot_id={test_slot.id}",
        headers=auth_headers_client
    )
    assert response.json() == []


def test_available_halls_requires_date(client, auth_headers_client, test_slot):
    response = client.get(f"/halls/available?time_slot_id={test_slot.id}", headers=auth_headers_client)
    assert response.status_code == 400
    assert response.json()["field"] == "date"


def test_metrics_endpoint(client, auth_headers_client, test_hall):
    client.get(f"/halls/{test_hall.id}", headers=auth_headers_client)
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "halls_http_requests_total" in response.text
    assert 'handler="/halls/{hall_id}"' in response.text
