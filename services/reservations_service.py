"""
Reservations Service

This service handles hall reservations and the notifications sent about
them. A reservation books one hall for one time slot on one date.

Endpoints:
    - POST /reservations: Book a hall (clients for themselves, staff for a client)
    - GET /reservations: Browse every reservation (staff)
    - GET /reservations/me: Reservations of the authenticated client
    - GET /reservations/{reservation_id}: Get specific reservation
    - DELETE /reservations/{reservation_id}: Cancel a reservation
    - GET /notifications: Notifications of the authenticated user
    - PATCH /notifications/{notification_id}/read: Mark a notification read
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from sqlalchemy.orm import Session
import datetime as dt
import logging

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import get_db, init_db
from shared.access_policy import Operation, require_operation
from shared.auth import Principal, get_current_principal
from shared.errors import register_error_handlers
from shared.monitoring import setup_metrics
from shared.notifications import NotificationService
from shared.pagination import PaginationMeta
from shared.reservations import ReservationEngine

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield


app = FastAPI(title="Reservations Service", version="1.0.0", lifespan=lifespan)
register_error_handlers(app)
setup_metrics(app, "reservations")

require_notifications = require_operation(Operation.NOTIFICATION_READ)


class ReservationCreate(BaseModel):
    """Reservation creation request model."""
    hall_id: int = Field(..., gt=0)
    time_slot_id: int = Field(..., gt=0)
    date: dt.date
    service_ids: List[int] = Field(default_factory=list)
    client_id: Optional[int] = Field(None, gt=0)


class ReservationResponse(BaseModel):
    """Reservation response model."""
    id: int
    client_id: int
    hall_id: int
    time_slot_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    state: str
    service_ids: List[int]
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


class ReservationListResponse(BaseModel):
    """Paginated reservation list."""
    data: List[ReservationResponse]
    pagination: PaginationMeta


class NotificationResponse(BaseModel):
    """Notification response model."""
    id: int
    user_id: int
    kind: str
    title: str
    body: str
    payload: Optional[str]
    is_read: bool
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = ConfigDict(from_attributes=True)


@app.post("/reservations", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    reservation_data: ReservationCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Book a hall for a time slot on a date.

    Args:
        reservation_data: Hall, slot, date, optional services and, for
            staff, the client the reservation is for
        principal: Authenticated user
        db: Database session

    Returns:
        ReservationResponse: The new PENDING reservation

    Raises:
        ValidationError: Past date or missing client_id for staff (400)
        Forbidden: A client booking for someone else (403)
        NotFound: Unknown or inactive hall, slot, service or client (404)
        SchedulingConflict: The hall is already booked for that slot (409)
    """
    return ReservationEngine(db).create(
        principal,
        hall_id=reservation_data.hall_id,
        time_slot_id=reservation_data.time_slot_id,
        on_date=reservation_data.date,
        service_ids=reservation_data.service_ids,
        client_id=reservation_data.client_id,
    )


@app.get("/reservations", response_model=ReservationListResponse)
def list_reservations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    estado: Optional[str] = Query(None, description="PENDING, CANCELLED or COMPLETED"),
    client_id: Optional[int] = Query(None, gt=0),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Browse every reservation (administrators and employees).

    Args:
        page: Page number
        limit: Page size
        estado: Optional state filter
        client_id: Optional owner filter
        principal: Authenticated user
        db: Database session

    Returns:
        ReservationListResponse: One page of reservations plus pagination data
    """
    result = ReservationEngine(db).list_all(principal, page, limit, estado, client_id)
    return ReservationListResponse(
        data=[ReservationResponse.model_validate(reservation) for reservation in result.items],
        pagination=result.meta
    )


@app.get("/reservations/me", response_model=List[ReservationResponse])
def my_reservations(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """List the authenticated client's reservations, newest date first."""
    return ReservationEngine(db).list_mine(principal)


@app.get("/reservations/{reservation_id}", response_model=ReservationResponse)
def get_reservation(
    reservation_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get a reservation; clients only see their own."""
    return ReservationEngine(db).get(principal, reservation_id)


@app.delete("/reservations/{reservation_id}", response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Cancel a reservation.

    Raises:
        InvalidStateTransition: Already cancelled or completed (400)
        Forbidden: A client cancelling someone else's reservation (403)
        NotFound: Unknown reservation (404)
    """
    return ReservationEngine(db).cancel(principal, reservation_id)


@app.get("/notifications", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    principal: Principal = Depends(require_notifications),
    db: Session = Depends(get_db)
):
    """List the authenticated user's notifications, newest first."""
    return NotificationService(db).list_for_user(principal.user_id, unread_only)


@app.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    principal: Principal = Depends(require_notifications),
    db: Session = Depends(get_db)
):
    """Mark one of the authenticated user's notifications as read."""
    return NotificationService(db).mark_read(notification_id, principal.user_id)


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "service": "reservations"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8005)
