"""
Scheduling conflict detection.

Ranges are half-open: [start, end). Two ranges overlap iff
``start_a < end_b and start_b < end_a``, so a slot ending at 14:00 and
another starting at 14:00 do not collide.
"""

from datetime import date, time
from typing import Optional, Set

from sqlalchemy.orm import Session

from shared.errors import NotFound, ValidationError
from shared.models import Hall, Reservation, ReservationState, TimeSlot
from shared.monitoring import MetricsCollector


def ranges_overlap(start_a, end_a, start_b, end_b) -> bool:
    """
    Check whether two half-open ranges intersect.

    Args:
        start_a: Start of the first range
        end_a: End of the first range (exclusive)
        start_b: Start of the second range
        end_b: End of the second range (exclusive)

    Returns:
        bool: True if the ranges share any instant

    Example:
        >>> ranges_overlap(time(12), time(14), time(14), time(16))
        False
        >>> ranges_overlap(time(12), time(14), time(13), time(15))
        True
    """
    return start_a < end_b and start_b < end_a


def validate_range(start: time, end: time, field: str = "end_time"):
    """Raise ValidationError unless start < end."""
    if start >= end:
        raise ValidationError("End time must be after start time", field=field)


def find_overlapping_slot(
    db: Session,
    start: time,
    end: time,
    exclude_id: Optional[int] = None,
) -> Optional[TimeSlot]:
    """
    Return an active time-slot whose range intersects [start, end).

    Every active slot is compared, not just the neighbours in ordinal
    order.
    """
    query = db.query(TimeSlot).filter(TimeSlot.is_active == True)  # noqa: E712
    if exclude_id is not None:
        query = query.filter(TimeSlot.id != exclude_id)
    for slot in query.all():
        if ranges_overlap(start, end, slot.start_time, slot.end_time):
            return slot
    return None


def _pending_on(db: Session, on_date: date):
    return db.query(Reservation).filter(
        Reservation.date == on_date,
        Reservation.state == ReservationState.PENDING.value,
    )


def is_occupied(
    db: Session,
    hall_id: int,
    on_date: date,
    time_slot_id: int,
    exclude_reservation_id: Optional[int] = None,
) -> bool:
    """
    Check whether a pending reservation already holds hall/date/slot.

    Args:
        db: Database session
        hall_id: Hall ID (must exist)
        on_date: Calendar date
        time_slot_id: Time-slot ID
        exclude_reservation_id: Reservation to ignore

    Returns:
        bool: True if the combination is taken

    Raises:
        NotFound: If the hall does not exist
    """
    if db.get(Hall, hall_id) is None:
        raise NotFound(f"Hall {hall_id} not found", field="hall_id")

    query = _pending_on(db, on_date).filter(
        Reservation.hall_id == hall_id,
        Reservation.time_slot_id == time_slot_id,
    )
    if exclude_reservation_id is not None:
        query = query.filter(Reservation.id != exclude_reservation_id)
    with MetricsCollector("select"):
        return query.first() is not None


def occupied_slot_ids(db: Session, hall_id: int, on_date: date) -> Set[int]:
    """IDs of slots with a pending reservation for the hall on that date."""
    rows = _pending_on(db, on_date).filter(Reservation.hall_id == hall_id)
    return {reservation.time_slot_id for reservation in rows}


def occupied_hall_ids(db: Session, time_slot_id: int, on_date: date) -> Set[int]:
    """IDs of halls with a pending reservation for the slot on that date."""
    rows = _pending_on(db, on_date).filter(Reservation.time_slot_id == time_slot_id)
    return {reservation.hall_id for reservation in rows}
