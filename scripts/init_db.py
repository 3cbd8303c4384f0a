"""
Database initialization script.

This script creates the schema and initial data for the Event Hall
Reservation API:
- Admin, employee and client accounts
- Sample halls
- The default time slots
- Sample add-on services

Existing records are left alone, so the script can be re-run.

Run with: python scripts/init_db.py
"""

import sys
import os
from datetime import time
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import SessionLocal, init_db
from shared.addons import ServiceRegistry
from shared.errors import DomainError
from shared.halls import HallRegistry
from shared.models import Hall, Service, TimeSlot, UserRole
from shared.time_slots import TimeSlotRegistry
from shared.users import UserRegistry

USERS = [
    {"name": "Admin", "surname": "Sistema", "email": "admin@salones.com",
     "password": "admin123", "role": UserRole.ADMIN},
    {"name": "Elena", "surname": "Empleada", "email": "empleado@salones.com",
     "password": "empleado123", "role": UserRole.EMPLOYEE},
    {"name": "Carla", "surname": "Gomez", "email": "carla@example.com",
     "password": "cliente123", "role": UserRole.CLIENT},
    {"name": "Diego", "surname": "Perez", "email": "diego@example.com",
     "password": "cliente123", "role": UserRole.CLIENT},
]

HALLS = [
    {"title": "Principado", "address": "Av. San Martin 1200", "latitude": -31.4135,
     "longitude": -64.1810, "capacity": 80, "price": 95000},
    {"title": "Arco Iris", "address": "Belgrano 450", "latitude": -31.4201,
     "longitude": -64.1888, "capacity": 60, "price": 72000},
    {"title": "Maquina de Jugar", "address": "Colon 2333", "latitude": -31.4050,
     "longitude": -64.2120, "capacity": 120, "price": 130000},
    {"title": "Trampolin", "address": "Velez Sarsfield 90", "latitude": None,
     "longitude": None, "capacity": 40, "price": 55000},
]

TIME_SLOTS = [
    (time(12, 0), time(14, 0)),
    (time(15, 0), time(17, 0)),
    (time(18, 0), time(20, 0)),
]

SERVICES = [
    ("Sonido", 15000),
    ("Mesa dulce", 25000),
    ("Tarjetas de invitacion", 5000),
    ("Mozos", 20000),
    ("Fotografia", 35000),
]


def create_users(db):
    """Create the default accounts."""
    registry = UserRegistry(db)
    created_count = 0
    for user_data in USERS:
        if registry.find_active_by_email(user_data["email"]) is None:
            registry.create(user_data)
            created_count += 1
    print(f"Created {created_count} users")


def create_halls(db):
    """Create sample halls."""
    registry = HallRegistry(db)
    created_count = 0
    for hall_data in HALLS:
        if db.query(Hall).filter(Hall.title == hall_data["title"]).first() is None:
            registry.create(hall_data)
            created_count += 1
    print(f"Created {created_count} halls")


def create_time_slots(db):
    """Create the default time slots when none exist."""
    if db.query(TimeSlot).count():
        print("Time slots already exist")
        return
    registry = TimeSlotRegistry(db)
    for start, end in TIME_SLOTS:
        registry.create(start, end)
    print(f"Created {len(TIME_SLOTS)} time slots")


def create_services(db):
    """Create sample add-on services."""
    registry = ServiceRegistry(db)
    created_count = 0
    for description, price in SERVICES:
        if db.query(Service).filter(Service.description == description).first() is None:
            registry.create(description, price)
            created_count += 1
    print(f"Created {created_count} services")


def main():
    """Initialize database with sample data."""
    print("Initializing database...")

    init_db()
    print("Database tables created")

    db = SessionLocal()

    try:
        create_users(db)
        create_time_slots(db)
        create_halls(db)
        create_services(db)

        print("\n" + "=" * 60)
        print("Database initialization complete!")
        print("=" * 60)
        print("\nTest Accounts:")
        print("-" * 60)
        for user_data in USERS:
            print(f"{user_data['role'].name:<10} email: {user_data['email']:<24} password: {user_data['password']}")
        print("-" * 60)
        print("\nIMPORTANT: Change these passwords in production!")

    except DomainError as e:
        print(f"\nError: {e.message}")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
