"""
Tests for guarded deactivation and restore across the registries.
"""

import pytest

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.addons import ServiceRegistry
from shared.errors import Conflict, DuplicateEntry, NotFound, ReferencedByActiveReservation
from shared.halls import HallRegistry
from shared.models import Hall, Service
from shared.reservations import ReservationEngine
from shared.soft_delete import count_active_reservations
from shared.time_slots import TimeSlotRegistry
from shared.users import UserRegistry


@pytest.fixture
def booking(db, client_principal, test_hall, test_slot, test_service, future_date):
    return ReservationEngine(db, notify=False).create(
        client_principal, test_hall.id, test_slot.id, future_date, [test_service.id]
    )


def test_hall_guarded_until_cancel(db, booking, client_principal, test_hall):
    registry = HallRegistry(db)

    with pytest.raises(ReferencedByActiveReservation) as exc:
        registry.soft_delete(test_hall.id)
    assert exc.value.status_code == 409
    db.refresh(test_hall)
    assert test_hall.is_active is True

    ReservationEngine(db).cancel(client_principal, booking.id)
    hall = registry.soft_delete(test_hall.id)
    assert hall.is_active is False


def test_time_slot_guarded(db, booking, test_slot):
    with pytest.raises(ReferencedByActiveReservation):
        TimeSlotRegistry(db).soft_delete(test_slot.id)


def test_service_guarded_through_link_table(db, booking, test_service):
    assert count_active_reservations(db, test_service) == 1
    with pytest.raises(ReferencedByActiveReservation):
        ServiceRegistry(db).soft_delete(test_service.id)


def test_client_with_pending_reservation_guarded(db, booking, client_user):
    with pytest.raises(ReferencedByActiveReservation):
        UserRegistry(db).soft_delete(client_user.id)


def test_unreferenced_service_can_be_deleted(db, booking):
    spare = ServiceRegistry(db).create("Mesa dulce", 500)
    assert ServiceRegistry(db).soft_delete(spare.id).is_active is False


def test_delete_twice_conflicts(db, test_hall):
    registry = HallRegistry(db)
    registry.soft_delete(test_hall.id)
    with pytest.raises(Conflict):
        registry.soft_delete(test_hall.id)


def test_delete_unknown(db):
    with pytest.raises(NotFound):
        HallRegistry(db).soft_delete(999)


def test_restore_round_trip(db, test_hall):
    registry = HallRegistry(db)
    registry.soft_delete(test_hall.id)
    assert registry.restore(test_hall.id).is_active is True
    with pytest.raises(Conflict):
        registry.restore(test_hall.id)


def test_restore_refuses_duplicate_hall(db, test_hall):
    registry = HallRegistry(db)
    registry.soft_delete(test_hall.id)
    registry.create({"title": "salon  azul", "address": "calle falsa 123", "price": 900})

    with pytest.raises(DuplicateEntry):
        registry.restore(test_hall.id)
    assert db.get(Hall, test_hall.id).is_active is False


def test_restore_refuses_duplicate_service(db, test_service):
    registry = ServiceRegistry(db)
    registry.soft_delete(test_service.id)
    registry.create("SONIDO", 100)

    with pytest.raises(DuplicateEntry):
        registry.restore(test_service.id)
    assert db.get(Service, test_service.id).is_active is False


def test_admin_cannot_deactivate_self(db, admin_user):
    with pytest.raises(Conflict):
        UserRegistry(db).soft_delete(admin_user.id, acting_user_id=admin_user.id)
