"""
Pytest configuration and fixtures for testing all services.
"""

import pytest
from datetime import date, time, timedelta
from unittest.mock import MagicMock, patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("ENABLE_METRICS", "true")

from shared.database import Base
from shared.models import Hall, Service, TimeSlot, User, UserRole
from shared.auth import Principal, create_user_token, get_password_hash
from shared.rate_limiting import reset_rate_limits


# Use in-memory SQLite for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# one bcrypt hash shared by every fixture user
PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def override_get_db(db):
    """Override the get_db dependency."""
    def _override_get_db():
        try:
            yield db
        finally:
            pass
    return _override_get_db


@pytest.fixture(autouse=True)
def redis_stub():
    """Replace the Redis client: every read is a miss, every write succeeds."""
    client = MagicMock()
    client.get.return_value = None
    client.keys.return_value = []
    with patch("shared.caching.redis_client", client):
        yield client


@pytest.fixture(autouse=True)
def clear_rate_limits():
    reset_rate_limits()
    yield


@pytest.fixture
def future_date():
    return date.today() + timedelta(days=30)


def _make_user(db, name, email, role):
    user = User(
        name=name,
        surname="Test",
        email=email,
        password_hash=PASSWORD_HASH,
        role=int(role),
        is_active=True
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture(scope="function")
def admin_user(db):
    return _make_user(db, "Admin", "admin@example.com", UserRole.ADMIN)


@pytest.fixture(scope="function")
def employee_user(db):
    return _make_user(db, "Employee", "employee@example.com", UserRole.EMPLOYEE)


@pytest.fixture(scope="function")
def client_user(db):
    return _make_user(db, "Carla", "carla@example.com", UserRole.CLIENT)


@pytest.fixture(scope="function")
def other_client(db):
    return _make_user(db, "Diego", "diego@example.com", UserRole.CLIENT)


@pytest.fixture
def admin_principal(admin_user):
    return Principal(user_id=admin_user.id, role=UserRole.ADMIN)


@pytest.fixture
def employee_principal(employee_user):
    return Principal(user_id=employee_user.id, role=UserRole.EMPLOYEE)


@pytest.fixture
def client_principal(client_user):
    return Principal(user_id=client_user.id, role=UserRole.CLIENT)


@pytest.fixture
def other_principal(other_client):
    return Principal(user_id=other_client.id, role=UserRole.CLIENT)


@pytest.fixture(scope="function")
def test_hall(db):
    """Create a test hall."""
    hall = Hall(
        title="Salon Azul",
        address="Calle Falsa 123",
        capacity=50,
        price=1500,
        is_active=True
    )
    db.add(hall)
    db.commit()
    db.refresh(hall)
    return hall


@pytest.fixture(scope="function")
def test_slot(db):
    """Create a test time slot (18:00-20:00)."""
    slot = TimeSlot(ordinal=1, start_time=time(18, 0), end_time=time(20, 0), is_active=True)
    db.add(slot)
    db.commit()
    db.refresh(slot)
    return slot


@pytest.fixture(scope="function")
def test_service(db):
    """Create a test add-on service."""
    service = Service(description="Sonido", price=300, is_active=True)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def _headers(user):
    return {"Authorization": f"Bearer {create_user_token(user)}"}


@pytest.fixture(scope="function")
def auth_headers_admin(admin_user):
    """Get authentication headers for the admin."""
    return _headers(admin_user)


@pytest.fixture(scope="function")
def auth_headers_employee(employee_user):
    """Get authentication headers for the employee."""
    return _headers(employee_user)


@pytest.fixture(scope="function")
def auth_headers_client(client_user):
    """Get authentication headers for the first client."""
    return _headers(client_user)


@pytest.fixture(scope="function")
def auth_headers_other(other_client):
    """Get authentication headers for the second client."""
    return _headers(other_client)
