"""
Guarded deactivation of halls, time-slots, services and users.

A record referenced by a PENDING reservation cannot be deactivated. The
registry calls ``deactivate`` inside its own transaction: the row is
locked first, so a concurrent reservation create (which locks the same
rows) either finishes before the count or waits until the flag flips.
"""

import logging
from typing import Type

from sqlalchemy.orm import Session

from shared.errors import Conflict, NotFound, ReferencedByActiveReservation
from shared.models import (
    Hall, Reservation, ReservationState, Service, TimeSlot, User,
    reservation_services,
)
from shared.monitoring import track_soft_delete_refused

logger = logging.getLogger(__name__)

ENTITY_NAMES = {
    Hall: "hall",
    TimeSlot: "time_slot",
    Service: "service",
    User: "user",
}


def lock_row(db: Session, model: Type, entity_id: int):
    """
    Load a row with ``SELECT ... FOR UPDATE``.

    Raises:
        NotFound: If no row has that id
    """
    entity = db.query(model).filter(model.id == entity_id).with_for_update().first()
    if entity is None:
        raise NotFound(f"{ENTITY_NAMES.get(model, model.__name__)} {entity_id} not found")
    return entity


def count_active_reservations(db: Session, entity) -> int:
    """Count PENDING reservations that reference the entity."""
    query = db.query(Reservation).filter(Reservation.state == ReservationState.PENDING.value)

    if isinstance(entity, Service):
        query = query.join(
            reservation_services, Reservation.id == reservation_services.c.reservation_id
        ).filter(reservation_services.c.service_id == entity.id)
    elif isinstance(entity, Hall):
        query = query.filter(Reservation.hall_id == entity.id)
    elif isinstance(entity, TimeSlot):
        query = query.filter(Reservation.time_slot_id == entity.id)
    elif isinstance(entity, User):
        query = query.filter(Reservation.client_id == entity.id)
    else:
        raise TypeError(f"Unsupported entity {type(entity).__name__}")

    return query.count()


def ensure_not_referenced(db: Session, entity):
    """
    Refuse when a PENDING reservation references the entity.

    Raises:
        ReferencedByActiveReservation: If at least one is found
    """
    count = count_active_reservations(db, entity)
    if count:
        name = ENTITY_NAMES[type(entity)]
        track_soft_delete_refused(name)
        logger.info(f"Refused to deactivate {name} {entity.id}: {count} active reservation(s)")
        raise ReferencedByActiveReservation(
            f"Cannot deactivate {name} {entity.id}: it has {count} active reservation(s)"
        )


def deactivate(db: Session, model: Type, entity_id: int):
    """
    Lock, check and flip ``is_active`` to False.

    Must run inside ``transaction(db)``.

    Raises:
        NotFound: Unknown id
        Conflict: Already inactive
        ReferencedByActiveReservation: A PENDING reservation references it
    """
    entity = lock_row(db, model, entity_id)
    name = ENTITY_NAMES[model]
    if not entity.is_active:
        raise Conflict(f"{name} {entity_id} is already inactive")
    ensure_not_referenced(db, entity)
    entity.is_active = False
    db.flush()
    logger.info(f"Deactivated {name} {entity_id}")
    return entity


def reactivate(db: Session, model: Type, entity_id: int, check=None):
    """
    Lock the row and flip ``is_active`` back to True.

    ``check`` is called with the locked row before the flag flips; the
    calling registry passes its uniqueness or overlap rule there.

    Raises:
        NotFound: Unknown id
        Conflict: Already active
    """
    entity = lock_row(db, model, entity_id)
    name = ENTITY_NAMES[model]
    if entity.is_active:
        raise Conflict(f"{name} {entity_id} is already active")
    if check is not None:
        check(entity)
    entity.is_active = True
    db.flush()
    logger.info(f"Restored {name} {entity_id}")
    return entity
