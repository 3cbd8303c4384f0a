"""
Hall registry.

Owns the lifecycle of halls ("salones"): create, edit, guarded soft
delete, restore, browse and availability for a slot on a date. No two
active halls may share the same title and address, compared without
regard to case or repeated whitespace. Writes that check the rule hold a
table lock until they commit.
"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.auth import sanitize_input
from shared.database import lock_table, transaction
from shared.errors import DuplicateEntry, NotFound
from shared.models import Hall, TimeSlot
from shared.pagination import Page, paginate
from shared.scheduling import occupied_hall_ids
from shared.soft_delete import deactivate, lock_row, reactivate

logger = logging.getLogger(__name__)

HALL_FIELDS = ("title", "address", "latitude", "longitude", "capacity", "price")


def clean_text(value: Optional[str]) -> Optional[str]:
    """Escape and collapse whitespace in a free-text field."""
    if value is None:
        return None
    return " ".join(sanitize_input(value).split())


class HallRegistry:
    """
    Hall operations bound to one database session.

    Example:
        >>> registry = HallRegistry(db)
        >>> hall = registry.create({"title": "Salon Azul", "address": "Calle 1", "price": 1500})
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, hall_id: int, include_inactive: bool = False) -> Hall:
        """
        Get a hall by id.

        Raises:
            NotFound: Unknown id, or inactive when include_inactive is False
        """
        hall = self.db.get(Hall, hall_id)
        if hall is None or (not hall.is_active and not include_inactive):
            raise NotFound(f"Hall {hall_id} not found")
        return hall

    def list(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> Page:
        """Browse halls, active first, then by title."""
        query = self.db.query(Hall)
        if not include_inactive:
            query = query.filter(Hall.is_active == True)  # noqa: E712
        if search:
            term = f"%{clean_text(search)}%"
            query = query.filter(or_(Hall.title.ilike(term), Hall.address.ilike(term)))
        query = query.order_by(Hall.is_active.desc(), Hall.title.asc(), Hall.id.asc())
        return paginate(query, page, limit)

    def _ensure_unique(self, title: str, address: str, exclude_id: Optional[int] = None):
        query = self.db.query(Hall).filter(
            Hall.is_active == True,  # noqa: E712
            func.lower(Hall.title) == title.lower(),
            func.lower(Hall.address) == address.lower(),
        )
        if exclude_id is not None:
            query = query.filter(Hall.id != exclude_id)
        if query.first() is not None:
            raise DuplicateEntry(
                f"An active hall named '{title}' already exists at '{address}'",
                field="title",
            )

    def create(self, data: dict) -> Hall:
        """
        Add a hall.

        Args:
            data: title, address, price and optional latitude, longitude,
                capacity

        Raises:
            DuplicateEntry: Same title and address as an active hall
        """
        values = {field: data.get(field) for field in HALL_FIELDS}
        values["title"] = clean_text(values["title"])
        values["address"] = clean_text(values["address"])

        with transaction(self.db):
            lock_table(self.db, Hall)
            self._ensure_unique(values["title"], values["address"])
            hall = Hall(**values, is_active=True)
            self.db.add(hall)

        self.db.refresh(hall)
        logger.info(f"Hall {hall.id} created: {hall.title}")
        return hall

    def update(self, hall_id: int, changes: dict) -> Hall:
        """
        Edit an active hall. Full and partial updates share this path.

        Raises:
            NotFound: Unknown or inactive hall
            DuplicateEntry: The new title/address collides with another
                active hall
        """
        with transaction(self.db):
            lock_table(self.db, Hall)
            hall = lock_row(self.db, Hall, hall_id)
            if not hall.is_active:
                raise NotFound(f"Hall {hall_id} not found")

            for field in HALL_FIELDS:
                if field not in changes:
                    continue
                value = changes[field]
                if field in ("title", "address"):
                    value = clean_text(value)
                setattr(hall, field, value)

            if "title" in changes or "address" in changes:
                self._ensure_unique(hall.title, hall.address, exclude_id=hall.id)

        self.db.refresh(hall)
        return hall

    def soft_delete(self, hall_id: int) -> Hall:
        """
        Deactivate a hall.

        Raises:
            ReferencedByActiveReservation: A PENDING reservation uses it
        """
        with transaction(self.db):
            hall = deactivate(self.db, Hall, hall_id)
        self.db.refresh(hall)
        return hall

    def restore(self, hall_id: int) -> Hall:
        """
        Reactivate a hall.

        Raises:
            DuplicateEntry: An active hall took the same title and address
        """
        with transaction(self.db):
            lock_table(self.db, Hall)
            hall = reactivate(
                self.db, Hall, hall_id,
                check=lambda h: self._ensure_unique(h.title, h.address, exclude_id=h.id),
            )
        self.db.refresh(hall)
        return hall

    def get_available_for(self, on_date: date, time_slot_id: int) -> List[Hall]:
        """
        Active halls with no pending reservation for the slot on that date.

        Raises:
            NotFound: Unknown or inactive time-slot
        """
        slot = self.db.get(TimeSlot, time_slot_id)
        if slot is None or not slot.is_active:
            raise NotFound(f"Time slot {time_slot_id} not found", field="time_slot_id")

        taken = occupied_hall_ids(self.db, time_slot_id, on_date)
        query = self.db.query(Hall).filter(Hall.is_active == True)  # noqa: E712
        if taken:
            query = query.filter(Hall.id.notin_(taken))
        return query.order_by(Hall.title.asc(), Hall.id.asc()).all()
