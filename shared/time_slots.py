"""
Time-slot registry.

Owns the lifecycle of time-slots ("turnos"). Active slots never overlap.
Every create, update and restore locks the time_slots table for writing
before comparing its range with all other active slots, so concurrent
writes are checked one after another.
"""

import logging
from datetime import date, time
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from shared.database import lock_table, transaction
from shared.errors import NotFound, SchedulingConflict
from shared.models import Hall, TimeSlot
from shared.pagination import Page, paginate
from shared.scheduling import find_overlapping_slot, occupied_slot_ids, validate_range
from shared.soft_delete import deactivate, lock_row, reactivate

logger = logging.getLogger(__name__)


def _fmt(value: time) -> str:
    return value.strftime("%H:%M")


class TimeSlotRegistry:
    """Time-slot operations bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, slot_id: int, include_inactive: bool = False) -> TimeSlot:
        """
        Get a time-slot by id.

        Raises:
            NotFound: Unknown id, or inactive when include_inactive is False
        """
        slot = self.db.get(TimeSlot, slot_id)
        if slot is None or (not slot.is_active and not include_inactive):
            raise NotFound(f"Time slot {slot_id} not found")
        return slot

    def list(self, page: int = 1, limit: int = 10, include_inactive: bool = False) -> Page:
        """Browse slots, active first, then by ordinal."""
        query = self.db.query(TimeSlot)
        if not include_inactive:
            query = query.filter(TimeSlot.is_active == True)  # noqa: E712
        query = query.order_by(TimeSlot.is_active.desc(), TimeSlot.ordinal.asc(), TimeSlot.id.asc())
        return paginate(query, page, limit)

    def _ensure_no_overlap(self, start: time, end: time, exclude_id: Optional[int] = None):
        clash = find_overlapping_slot(self.db, start, end, exclude_id=exclude_id)
        if clash is not None:
            raise SchedulingConflict(
                f"Time range {_fmt(start)}-{_fmt(end)} overlaps time slot {clash.id} "
                f"({_fmt(clash.start_time)}-{_fmt(clash.end_time)})",
                field="start_time",
            )

    def _next_ordinal(self) -> int:
        highest = self.db.query(func.max(TimeSlot.ordinal)).scalar()
        return (highest or 0) + 1

    def create(self, start_time: time, end_time: time, ordinal: Optional[int] = None) -> TimeSlot:
        """
        Add a time-slot.

        Args:
            start_time: Window start
            end_time: Window end, after start_time
            ordinal: Position; defaults to one past the highest existing

        Raises:
            ValidationError: start_time is not before end_time
            SchedulingConflict: Overlaps an active slot
        """
        validate_range(start_time, end_time)

        with transaction(self.db):
            lock_table(self.db, TimeSlot)
            self._ensure_no_overlap(start_time, end_time)
            slot = TimeSlot(
                ordinal=ordinal if ordinal is not None else self._next_ordinal(),
                start_time=start_time,
                end_time=end_time,
                is_active=True,
            )
            self.db.add(slot)

        self.db.refresh(slot)
        logger.info(f"Time slot {slot.id} created: {_fmt(start_time)}-{_fmt(end_time)}")
        return slot

    def update(self, slot_id: int, changes: dict) -> TimeSlot:
        """
        Edit an active time-slot.

        The time range is re-validated against every other active slot
        whenever start_time or end_time changes; the ordinal is free.

        Raises:
            NotFound: Unknown or inactive slot
            ValidationError: Resulting start_time is not before end_time
            SchedulingConflict: Resulting range overlaps another active slot
        """
        with transaction(self.db):
            lock_table(self.db, TimeSlot)
            slot = lock_row(self.db, TimeSlot, slot_id)
            if not slot.is_active:
                raise NotFound(f"Time slot {slot_id} not found")

            start = changes.get("start_time") or slot.start_time
            end = changes.get("end_time") or slot.end_time
            if "start_time" in changes or "end_time" in changes:
                validate_range(start, end)
                self._ensure_no_overlap(start, end, exclude_id=slot.id)
                slot.start_time = start
                slot.end_time = end
            if changes.get("ordinal") is not None:
                slot.ordinal = changes["ordinal"]

        self.db.refresh(slot)
        return slot

    def soft_delete(self, slot_id: int) -> TimeSlot:
        """
        Deactivate a time-slot.

        Raises:
            ReferencedByActiveReservation: A PENDING reservation uses it
        """
        with transaction(self.db):
            slot = deactivate(self.db, TimeSlot, slot_id)
        self.db.refresh(slot)
        return slot

    def restore(self, slot_id: int) -> TimeSlot:
        """
        Reactivate a time-slot.

        Raises:
            SchedulingConflict: An active slot now covers part of its range
        """
        with transaction(self.db):
            lock_table(self.db, TimeSlot)
            slot = reactivate(
                self.db, TimeSlot, slot_id,
                check=lambda s: self._ensure_no_overlap(s.start_time, s.end_time, exclude_id=s.id),
            )
        self.db.refresh(slot)
        return slot

    def get_available_for(self, on_date: date, hall_id: int) -> List[TimeSlot]:
        """
        Active slots with no pending reservation for the hall on that date,
        by ordinal.

        Raises:
            NotFound: Unknown or inactive hall
        """
        hall = self.db.get(Hall, hall_id)
        if hall is None or not hall.is_active:
            raise NotFound(f"Hall {hall_id} not found", field="hall_id")

        taken = occupied_slot_ids(self.db, hall_id, on_date)
        query = self.db.query(TimeSlot).filter(TimeSlot.is_active == True)  # noqa: E712
        if taken:
            query = query.filter(TimeSlot.id.notin_(taken))
        return query.order_by(TimeSlot.ordinal.asc(), TimeSlot.id.asc()).all()
