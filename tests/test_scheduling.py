"""
Unit tests for scheduling conflict detection.
"""

import pytest
from datetime import date, time, timedelta
from unittest.mock import MagicMock

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import lock_table
from shared.errors import NotFound, ValidationError
from shared.models import Reservation, ReservationState, TimeSlot
from shared.scheduling import (
    find_overlapping_slot,
    is_occupied,
    occupied_hall_ids,
    occupied_slot_ids,
    ranges_overlap,
    validate_range,
)
from shared.time_slots import TimeSlotRegistry


@pytest.mark.parametrize("a, b, expected", [
    ((time(12), time(14)), (time(13), time(15)), True),
    ((time(12), time(14)), (time(14), time(16)), False),
    ((time(12), time(18)), (time(13), time(14)), True),
    ((time(12), time(14)), (time(12), time(14)), True),
    ((time(9), time(10)), (time(11), time(12)), False),
])
def test_ranges_overlap_is_symmetric(a, b, expected):
    """Overlap gives the same answer whichever range comes first."""
    assert ranges_overlap(a[0], a[1], b[0], b[1]) is expected
    assert ranges_overlap(b[0], b[1], a[0], a[1]) is expected


def test_validate_range_rejects_empty_and_inverted():
    validate_range(time(12), time(14))
    with pytest.raises(ValidationError) as exc:
        validate_range(time(14), time(14))
    assert exc.value.field == "end_time"
    with pytest.raises(ValidationError):
        validate_range(time(15), time(14))


def test_find_overlapping_slot_checks_every_active_slot(db, test_slot):
    """A range is compared against all active slots, not just neighbours."""
    db.add(TimeSlot(ordinal=2, start_time=time(9), end_time=time(11), is_active=True))
    db.commit()

    clash = find_overlapping_slot(db, time(19), time(21))
    assert clash is not None
    assert clash.id == test_slot.id

    assert find_overlapping_slot(db, time(20), time(22)) is None
    assert find_overlapping_slot(db, time(19), time(21), exclude_id=test_slot.id) is None


def test_find_overlapping_slot_ignores_inactive(db, test_slot):
    test_slot.is_active = False
    db.commit()
    assert find_overlapping_slot(db, time(18), time(20)) is None


def test_lock_table_on_postgresql():
    session = MagicMock()
    session.get_bind.return_value.dialect.name = "postgresql"

    lock_table(session, TimeSlot)

    statement = session.execute.call_args.args[0]
    assert str(statement) == "LOCK TABLE time_slots IN SHARE ROW EXCLUSIVE MODE"


def test_lock_table_not_issued_on_sqlite():
    session = MagicMock()
    session.get_bind.return_value.dialect.name = "sqlite"

    lock_table(session, TimeSlot)

    session.execute.assert_not_called()


def test_time_range_writes_lock_the_table(db, test_slot, monkeypatch):
    locked = []
    monkeypatch.setattr("shared.time_slots.lock_table", lambda session, model: locked.append(model))
    registry = TimeSlotRegistry(db)

    slot = registry.create(time(8), time(10))
    registry.update(slot.id, {"end_time": time(11)})
    registry.soft_delete(slot.id)
    registry.restore(slot.id)

    assert locked == [TimeSlot, TimeSlot, TimeSlot]


def _reserve(db, client_id, hall_id, slot, on_date, state=ReservationState.PENDING):
    reservation = Reservation(
        client_id=client_id,
        hall_id=hall_id,
        time_slot_id=slot.id,
        date=on_date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        state=state.value,
    )
    db.add(reservation)
    db.commit()
    return reservation


def test_is_occupied_counts_only_pending(db, client_user, test_hall, test_slot, future_date):
    assert is_occupied(db, test_hall.id, future_date, test_slot.id) is False

    _reserve(db, client_user.id, test_hall.id, test_slot, future_date, ReservationState.CANCELLED)
    assert is_occupied(db, test_hall.id, future_date, test_slot.id) is False

    pending = _reserve(db, client_user.id, test_hall.id, test_slot, future_date)
    assert is_occupied(db, test_hall.id, future_date, test_slot.id) is True
    assert is_occupied(db, test_hall.id, future_date + timedelta(days=1), test_slot.id) is False
    assert is_occupied(
        db, test_hall.id, future_date, test_slot.id, exclude_reservation_id=pending.id
    ) is False


def test_is_occupied_unknown_hall(db, test_slot):
    with pytest.raises(NotFound):
        is_occupied(db, 999, date.today(), test_slot.id)


def test_occupied_ids(db, client_user, test_hall, test_slot, future_date):
    _reserve(db, client_user.id, test_hall.id, test_slot, future_date)

    assert occupied_slot_ids(db, test_hall.id, future_date) == {test_slot.id}
    assert occupied_hall_ids(db, test_slot.id, future_date) == {test_hall.id}
    assert occupied_slot_ids(db, test_hall.id, future_date + timedelta(days=1)) == set()
