"""
Reservation notifications.

A confirmation is rendered from an HTML template and stored for the
client after the reservation has been committed. Sending is best
effort: a failure is logged and reported as False, and the reservation
stands.
"""

import json
import logging
import os
from typing import List

from jinja2 import Environment, FileSystemLoader, select_autoescape
from sqlalchemy.orm import Session

from shared.errors import NotFound
from shared.models import Notification, Reservation
from shared.monitoring import track_notification

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")
RESERVATION_CONFIRMED = "RESERVATION_CONFIRMED"

template_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)


def reservation_snapshot(reservation: Reservation) -> dict:
    """JSON-ready copy of the reservation stored with the notification."""
    return {
        "id": reservation.id,
        "client_id": reservation.client_id,
        "hall_id": reservation.hall_id,
        "time_slot_id": reservation.time_slot_id,
        "date": reservation.date.isoformat(),
        "start_time": reservation.start_time.strftime("%H:%M"),
        "end_time": reservation.end_time.strftime("%H:%M"),
        "state": reservation.state,
        "service_ids": reservation.service_ids,
    }


def render_confirmation(reservation: Reservation) -> str:
    """Render the confirmation body for a reservation."""
    hall_price = float(reservation.hall.price)
    services = [
        {"description": service.description, "price": float(service.price)}
        for service in reservation.services
    ]
    client = reservation.client
    template = template_env.get_template("reservation_confirmed.html")
    return template.render(
        title=f"Reserva #{reservation.id} confirmada",
        client_name=f"{client.name} {client.surname}",
        reservation=reservation,
        hall=reservation.hall,
        hall_price=hall_price,
        services=services,
        total=hall_price + sum(service["price"] for service in services),
    )


class NotificationService:
    """Notification operations bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def send_reservation_confirmation(self, reservation: Reservation) -> bool:
        """
        Store a rendered confirmation for the reservation's client.

        Returns:
            bool: True if stored, False if anything went wrong
        """
        try:
            notification = Notification(
                user_id=reservation.client_id,
                kind=RESERVATION_CONFIRMED,
                title=f"Reserva #{reservation.id} confirmada",
                body=render_confirmation(reservation),
                payload=json.dumps(reservation_snapshot(reservation)),
                is_read=False,
            )
            self.db.add(notification)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception(f"Could not send confirmation for reservation {reservation.id}")
            track_notification(False)
            return False

        logger.info(f"Confirmation stored for user {reservation.client_id}, reservation {reservation.id}")
        track_notification(True)
        return True

    def list_for_user(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        """Notifications of a user, newest first."""
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read == False)  # noqa: E712
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        """
        Mark one of the user's notifications as read.

        Raises:
            NotFound: No such notification for this user
        """
        notification = self.db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        ).first()
        if notification is None:
            raise NotFound(f"Notification {notification_id} not found")

        notification.is_read = True
        self.db.commit()
        self.db.refresh(notification)
        return notification
