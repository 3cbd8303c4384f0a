"""
Shared database models for all services.

This module contains the SQLAlchemy models used across all services
of the Event Hall Reservation API: users, halls, time-slots, bookable
services, reservations and the notifications sent about them.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Date, Time, Boolean, Numeric,
    ForeignKey, Text, Table, Index, CheckConstraint, text
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
from shared.database import Base


class UserRole(enum.IntEnum):
    """User role enumeration."""
    ADMIN = 1
    EMPLOYEE = 2
    CLIENT = 3


ROLE_LABELS = {
    UserRole.ADMIN: "Administrador",
    UserRole.EMPLOYEE: "Empleado",
    UserRole.CLIENT: "Cliente",
}

STAFF_ROLES = (UserRole.ADMIN, UserRole.EMPLOYEE)


class ReservationState(str, enum.Enum):
    """Reservation lifecycle state."""
    PENDING = "PENDING"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


TERMINAL_STATES = (ReservationState.CANCELLED, ReservationState.COMPLETED)


reservation_services = Table(
    "reservation_services",
    Base.metadata,
    Column("reservation_id", Integer, ForeignKey("reservations.id"), primary_key=True),
    Column("service_id", Integer, ForeignKey("services.id"), primary_key=True),
)


class User(Base):
    """
    User model representing system users.

    Attributes:
        id (int): Primary key
        name (str): First name
        surname (str): Last name
        email (str): Login identifier, unique among active users
        password_hash (str): Hashed password
        role (int): 1 (admin), 2 (employee) or 3 (client)
        phone (str): Optional phone number
        photo (str): Optional photo URL
        is_active (bool): Soft-delete flag
        created_at (datetime): Account creation timestamp
        updated_at (datetime): Last update timestamp
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    surname = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Integer, default=UserRole.CLIENT.value, nullable=False)
    phone = Column(String(30), nullable=True)
    photo = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    reservations = relationship("Reservation", back_populates="client")
    notifications = relationship("Notification", back_populates="user")

    @property
    def role_label(self) -> str:
        try:
            return ROLE_LABELS[UserRole(self.role)]
        except ValueError:
            return "Desconocido"


class Hall(Base):
    """
    Hall ("salon") model representing a rentable venue.

    Attributes:
        id (int): Primary key
        title (str): Hall name
        address (str): Street address
        latitude (Decimal): Optional latitude
        longitude (Decimal): Optional longitude
        capacity (int): Optional guest capacity
        price (Decimal): Rental price
        is_active (bool): Soft-delete flag
        created_at (datetime): Creation timestamp
        updated_at (datetime): Last update timestamp
    """
    __tablename__ = "halls"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    address = Column(String(255), nullable=False)
    latitude = Column(Numeric(10, 8), nullable=True)
    longitude = Column(Numeric(11, 8), nullable=True)
    capacity = Column(Integer, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    reservations = relationship("Reservation", back_populates="hall")


class TimeSlot(Base):
    """
    Time-slot ("turno") model: a reusable window such as 12:00-14:00.

    Attributes:
        id (int): Primary key
        ordinal (int): Display/sort position
        start_time (time): Window start (inclusive)
        end_time (time): Window end (exclusive)
        is_active (bool): Soft-delete flag
        created_at (datetime): Creation timestamp
        updated_at (datetime): Last update timestamp
    """
    __tablename__ = "time_slots"

    id = Column(Integer, primary_key=True, index=True)
    ordinal = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    reservations = relationship("Reservation", back_populates="time_slot")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_time_slot_interval"),
    )


class Service(Base):
    """
    Bookable add-on service (sound equipment, catering, ...).

    Attributes:
        id (int): Primary key
        description (str): Description, unique among active services
        price (Decimal): Price
        is_active (bool): Soft-delete flag
        created_at (datetime): Creation timestamp
        updated_at (datetime): Last update timestamp
    """
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    reservations = relationship(
        "Reservation", secondary=reservation_services, back_populates="services"
    )


class Reservation(Base):
    """
    Reservation of a hall for one time-slot on one date.

    Attributes:
        id (int): Primary key
        client_id (int): Foreign key to the owning User
        hall_id (int): Foreign key to Hall
        time_slot_id (int): Foreign key to TimeSlot
        date (date): Event date
        start_time (time): Copied from the slot at creation
        end_time (time): Copied from the slot at creation
        state (str): PENDING, CANCELLED or COMPLETED
        created_at (datetime): Creation timestamp
        updated_at (datetime): Last update timestamp
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    hall_id = Column(Integer, ForeignKey("halls.id"), nullable=False, index=True)
    time_slot_id = Column(Integer, ForeignKey("time_slots.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    state = Column(String(20), default=ReservationState.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    client = relationship("User", back_populates="reservations")
    hall = relationship("Hall", back_populates="reservations")
    time_slot = relationship("TimeSlot", back_populates="reservations")
    services = relationship(
        "Service", secondary=reservation_services, back_populates="reservations"
    )

    __table_args__ = (
        # one PENDING reservation per hall, date and slot
        Index(
            "uq_reservations_pending_slot",
            "hall_id", "date", "time_slot_id",
            unique=True,
            sqlite_where=text("state = 'PENDING'"),
            postgresql_where=text("state = 'PENDING'"),
        ),
    )

    @property
    def service_ids(self):
        return sorted(service.id for service in self.services)


class Notification(Base):
    """
    Notification stored for a user (reservation confirmations).

    Attributes:
        id (int): Primary key
        user_id (int): Foreign key to User
        kind (str): Notification type
        title (str): Short title
        body (str): Rendered HTML body
        payload (str): JSON snapshot of the reservation
        is_read (bool): Read flag
        created_at (datetime): Creation timestamp
        updated_at (datetime): Last update timestamp
    """
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    kind = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    payload = Column(Text, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="notifications")
