"""
Reservation engine.

Every reservation state change goes through this module. The lifecycle
is PENDING -> CANCELLED | COMPLETED, and both CANCELLED and COMPLETED
are terminal.

Creating a reservation is one transaction: the hall, time-slot,
services and client rows are locked in that order, occupancy is
checked, and the row is inserted. The partial unique index on pending
(hall, date, slot) rejects anything that still gets through, and that
violation is reported as a scheduling conflict.
"""

import logging
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.access_policy import Operation, authorize
from shared.addons import invalidate_service_stats
from shared.auth import Principal
from shared.database import transaction
from shared.errors import (
    InvalidStateTransition, NotFound, SchedulingConflict, ValidationError
)
from shared.models import (
    Hall, Reservation, ReservationState, Service, TERMINAL_STATES, TimeSlot, User, UserRole
)
from shared.monitoring import track_reservation, track_reservation_conflict
from shared.notifications import NotificationService
from shared.pagination import Page, paginate
from shared.scheduling import is_occupied

logger = logging.getLogger(__name__)


def parse_state(value: Optional[str], field: str = "estado") -> Optional[ReservationState]:
    """Turn a query value such as ``pending`` into a ReservationState."""
    if value is None or value == "":
        return None
    try:
        return ReservationState(value.strip().upper())
    except ValueError:
        allowed = ", ".join(state.value for state in ReservationState)
        raise ValidationError(f"State must be one of {allowed}", field=field)


class ReservationEngine:
    """
    Reservation operations bound to one database session.

    Args:
        db: Database session
        today: Callable returning the current date
        notify: Send a confirmation after a reservation is created
    """

    def __init__(self, db: Session, today: Callable[[], date] = date.today, notify: bool = True):
        self.db = db
        self.today = today
        self.notify = notify

    def _lock_active(self, model, entity_id: int, field: str, label: str):
        entity = self.db.query(model).filter(model.id == entity_id).with_for_update().first()
        if entity is None or not entity.is_active:
            raise NotFound(f"{label} {entity_id} not found or inactive", field=field)
        return entity

    def _lock_services(self, service_ids: Iterable[int]) -> List[Service]:
        wanted = sorted(set(service_ids))
        if not wanted:
            return []
        services = (
            self.db.query(Service)
            .filter(Service.id.in_(wanted))
            .order_by(Service.id)
            .with_for_update()
            .all()
        )
        usable = {service.id for service in services if service.is_active}
        missing = [service_id for service_id in wanted if service_id not in usable]
        if missing:
            raise NotFound(
                f"Service(s) {', '.join(str(i) for i in missing)} not found or inactive",
                field="service_ids",
            )
        return services

    def _resolve_owner(self, principal: Principal, client_id: Optional[int]) -> int:
        if principal.is_client:
            authorize(
                principal, Operation.RESERVATION_CREATE, client_id,
                message="Clients can only book reservations for themselves",
            )
            return principal.user_id

        authorize(principal, Operation.RESERVATION_CREATE)
        if client_id is None:
            raise ValidationError("client_id is required when staff book a reservation", field="client_id")
        return client_id

    def create(
        self,
        principal: Principal,
        hall_id: int,
        time_slot_id: int,
        on_date: date,
        service_ids: Optional[Iterable[int]] = None,
        client_id: Optional[int] = None,
    ) -> Reservation:
        """
        Book a hall for one time-slot on one date.

        Args:
            principal: Acting user
            hall_id: Hall to book
            time_slot_id: Slot to book; its times are copied to the reservation
            on_date: Event date, today or later
            service_ids: Optional add-on services
            client_id: Owner; required for staff, must be the principal for
                clients

        Returns:
            Reservation: The new PENDING reservation

        Raises:
            Forbidden: A client booking for someone else
            ValidationError: Missing client_id for staff, past date, or an
                owner who is not a client
            NotFound: Unknown or inactive hall, slot, service or client
            SchedulingConflict: The hall is already booked for that slot
        """
        owner_id = self._resolve_owner(principal, client_id)

        if on_date < self.today():
            raise ValidationError("Reservation date cannot be in the past", field="date")

        try:
            with transaction(self.db):
                hall = self._lock_active(Hall, hall_id, "hall_id", "Hall")
                slot = self._lock_active(TimeSlot, time_slot_id, "time_slot_id", "Time slot")
                services = self._lock_services(service_ids or [])
                client = self._lock_active(User, owner_id, "client_id", "Client")
                if client.role != UserRole.CLIENT:
                    raise ValidationError(f"User {owner_id} is not a client", field="client_id")

                if is_occupied(self.db, hall.id, on_date, slot.id):
                    raise SchedulingConflict(
                        f"Hall {hall.id} is already booked on {on_date.isoformat()} "
                        f"for time slot {slot.id}",
                        field="time_slot_id",
                    )

                reservation = Reservation(
                    client_id=client.id,
                    hall_id=hall.id,
                    time_slot_id=slot.id,
                    date=on_date,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    state=ReservationState.PENDING.value,
                    services=services,
                )
                self.db.add(reservation)
                self.db.flush()
        except SchedulingConflict:
            track_reservation_conflict()
            raise
        except IntegrityError:
            track_reservation_conflict()
            logger.warning(f"Unique index rejected booking of hall {hall_id} on {on_date} slot {time_slot_id}")
            raise SchedulingConflict(
                f"Hall {hall_id} is already booked on {on_date.isoformat()} for time slot {time_slot_id}",
                field="time_slot_id",
            )

        self.db.refresh(reservation)
        track_reservation(ReservationState.PENDING.value)
        invalidate_service_stats()
        logger.info(
            f"Reservation {reservation.id} created by user {principal.user_id} for client "
            f"{reservation.client_id}: hall {reservation.hall_id}, {reservation.date}, "
            f"slot {reservation.time_slot_id}"
        )

        if self.notify:
            NotificationService(self.db).send_reservation_confirmation(reservation)
        return reservation

    def get(self, principal: Principal, reservation_id: int) -> Reservation:
        """
        Read one reservation.

        Raises:
            NotFound: Unknown id
            Forbidden: A client reading someone else's reservation
        """
        reservation = self.db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        authorize(principal, Operation.RESERVATION_READ, reservation.client_id,
                  message="You can only view your own reservations")
        return reservation

    def list_mine(self, principal: Principal) -> List[Reservation]:
        """Reservations owned by the calling client, newest date first."""
        authorize(principal, Operation.RESERVATION_LIST_MINE,
                  message="Only clients have their own reservations")
        return (
            self.db.query(Reservation)
            .filter(Reservation.client_id == principal.user_id)
            .order_by(Reservation.date.desc(), Reservation.start_time.desc(), Reservation.id.desc())
            .all()
        )

    def list_all(
        self,
        principal: Principal,
        page: int = 1,
        limit: int = 10,
        state: Optional[str] = None,
        client_id: Optional[int] = None,
    ) -> Page:
        """
        Browse every reservation (staff only).

        Args:
            state: Optional state filter (PENDING, CANCELLED, COMPLETED)
            client_id: Optional owner filter
        """
        authorize(principal, Operation.RESERVATION_LIST_ALL,
                  message="Only administrators and employees can list all reservations")
        wanted = parse_state(state)

        query = self.db.query(Reservation)
        if wanted is not None:
            query = query.filter(Reservation.state == wanted.value)
        if client_id is not None:
            query = query.filter(Reservation.client_id == client_id)
        query = query.order_by(Reservation.date.desc(), Reservation.start_time.desc(), Reservation.id.desc())
        return paginate(query, page, limit)

    def cancel(self, principal: Principal, reservation_id: int) -> Reservation:
        """
        Cancel a pending reservation.

        Raises:
            NotFound: Unknown id
            Forbidden: A client cancelling someone else's reservation
            InvalidStateTransition: Already CANCELLED or COMPLETED
        """
        with transaction(self.db):
            reservation = (
                self.db.query(Reservation)
                .filter(Reservation.id == reservation_id)
                .with_for_update()
                .first()
            )
            if reservation is None:
                raise NotFound(f"Reservation {reservation_id} not found")
            authorize(principal, Operation.RESERVATION_CANCEL, reservation.client_id,
                      message="You can only cancel your own reservations")

            current = ReservationState(reservation.state)
            if current in TERMINAL_STATES:
                raise InvalidStateTransition(
                    f"Reservation {reservation_id} is already {current.value} and cannot be cancelled",
                    field="state",
                )

            reservation.state = ReservationState.CANCELLED.value
            reservation.updated_at = datetime.utcnow()

        self.db.refresh(reservation)
        track_reservation(ReservationState.CANCELLED.value)
        invalidate_service_stats()
        logger.info(f"Reservation {reservation_id} cancelled by user {principal.user_id}")
        return reservation

    def complete_elapsed(self, before: Optional[date] = None) -> int:
        """
        Mark PENDING reservations dated before ``before`` as COMPLETED.

        Args:
            before: Cut-off date, today by default

        Returns:
            int: Number of reservations completed
        """
        cutoff = before or self.today()
        with transaction(self.db):
            elapsed = (
                self.db.query(Reservation)
                .filter(
                    Reservation.state == ReservationState.PENDING.value,
                    Reservation.date < cutoff,
                )
                .with_for_update()
                .all()
            )
            now = datetime.utcnow()
            for reservation in elapsed:
                reservation.state = ReservationState.COMPLETED.value
                reservation.updated_at = now

        if elapsed:
            track_reservation(ReservationState.COMPLETED.value, len(elapsed))
            invalidate_service_stats()
        logger.info(f"Completed {len(elapsed)} reservation(s) dated before {cutoff.isoformat()}")
        return len(elapsed)
