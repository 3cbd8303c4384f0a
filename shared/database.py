"""
Database configuration and session management.

This module provides database connection, session management and the
transaction primitive shared by every service of the Event Hall
Reservation API.
"""

from contextlib import contextmanager
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
import os

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql://postgres:postgres@db:5432/salones"
)
SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"

engine = create_engine(DATABASE_URL, echo=SQL_ECHO, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    Get database session.

    Yields:
        Session: Database session

    Example:
        >>> db = next(get_db())
        >>> # Use db session
        >>> db.close()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Run a block of work as a single unit against the store.

    Commits when the block finishes and rolls everything back if it
    raises, so a check and the write that depends on it are never
    persisted separately.

    Args:
        db (Session): Database session

    Example:
        >>> with transaction(db):
        ...     hall.is_active = False
    """
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def lock_table(db: Session, model):
    """
    Make other writers of a table wait until the current transaction ends.

    Used before a check-then-write on a rule that spans rows (non-overlapping
    time-slots, unique titles and emails), where row locks cannot cover rows
    that do not exist yet. PostgreSQL takes a SHARE ROW EXCLUSIVE lock, which
    plain readers and ``SELECT ... FOR UPDATE`` pass. SQLite already admits
    a single writer at a time, so nothing is issued there.

    Args:
        db (Session): Session inside an open transaction
        model: Mapped class whose table is locked

    Example:
        >>> with transaction(db):
        ...     lock_table(db, TimeSlot)
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"LOCK TABLE {model.__tablename__} IN SHARE ROW EXCLUSIVE MODE"))


def init_db():
    """
    Initialize database tables.

    Creates all tables defined in the models.

    Example:
        >>> init_db()
    """
    import shared.models  # noqa: F401
    Base.metadata.create_all(bind=engine)
