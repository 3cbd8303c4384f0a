"""
Bookable service registry (sound, catering, decoration, ...).

Same administrative lifecycle as halls: the description is unique among
active services, checked under a table lock, and deactivation is refused
while a pending reservation includes the service.
"""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from shared.caching import CacheManager
from shared.database import lock_table, transaction
from shared.errors import DuplicateEntry, NotFound
from shared.halls import clean_text
from shared.models import Reservation, ReservationState, Service, reservation_services
from shared.monitoring import MetricsCollector
from shared.pagination import Page, paginate
from shared.soft_delete import deactivate, lock_row, reactivate

logger = logging.getLogger(__name__)

STATS_CACHE = "service_stats"


def invalidate_service_stats():
    """Drop cached rankings after reservations or services change."""
    with CacheManager(STATS_CACHE) as cache:
        cache.invalidate_all()


class ServiceRegistry:
    """Service operations bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, service_id: int, include_inactive: bool = False) -> Service:
        """
        Get a service by id.

        Raises:
            NotFound: Unknown id, or inactive when include_inactive is False
        """
        service = self.db.get(Service, service_id)
        if service is None or (not service.is_active and not include_inactive):
            raise NotFound(f"Service {service_id} not found")
        return service

    def list(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> Page:
        """Browse services, active first, then by description."""
        query = self.db.query(Service)
        if not include_inactive:
            query = query.filter(Service.is_active == True)  # noqa: E712
        if search:
            query = query.filter(Service.description.ilike(f"%{clean_text(search)}%"))
        query = query.order_by(Service.is_active.desc(), Service.description.asc(), Service.id.asc())
        return paginate(query, page, limit)

    def _ensure_unique(self, description: str, exclude_id: Optional[int] = None):
        query = self.db.query(Service).filter(
            Service.is_active == True,  # noqa: E712
            func.lower(Service.description) == description.lower(),
        )
        if exclude_id is not None:
            query = query.filter(Service.id != exclude_id)
        if query.first() is not None:
            raise DuplicateEntry(
                f"An active service described as '{description}' already exists",
                field="description",
            )

    def create(self, description: str, price) -> Service:
        """
        Add a service.

        Raises:
            DuplicateEntry: Same description as an active service
        """
        description = clean_text(description)
        with transaction(self.db):
            lock_table(self.db, Service)
            self._ensure_unique(description)
            service = Service(description=description, price=price, is_active=True)
            self.db.add(service)

        self.db.refresh(service)
        logger.info(f"Service {service.id} created: {service.description}")
        return service

    def update(self, service_id: int, changes: dict) -> Service:
        """
        Edit an active service.

        Raises:
            NotFound: Unknown or inactive service
            DuplicateEntry: New description collides with an active service
        """
        with transaction(self.db):
            lock_table(self.db, Service)
            service = lock_row(self.db, Service, service_id)
            if not service.is_active:
                raise NotFound(f"Service {service_id} not found")

            if changes.get("description") is not None:
                service.description = clean_text(changes["description"])
                self._ensure_unique(service.description, exclude_id=service.id)
            if changes.get("price") is not None:
                service.price = changes["price"]

        self.db.refresh(service)
        return service

    def soft_delete(self, service_id: int) -> Service:
        """
        Deactivate a service.

        Raises:
            ReferencedByActiveReservation: A PENDING reservation includes it
        """
        with transaction(self.db):
            service = deactivate(self.db, Service, service_id)
        self.db.refresh(service)
        invalidate_service_stats()
        return service

    def restore(self, service_id: int) -> Service:
        """
        Reactivate a service.

        Raises:
            DuplicateEntry: An active service took the same description
        """
        with transaction(self.db):
            lock_table(self.db, Service)
            service = reactivate(
                self.db, Service, service_id,
                check=lambda s: self._ensure_unique(s.description, exclude_id=s.id),
            )
        self.db.refresh(service)
        invalidate_service_stats()
        return service

    def most_used(self, limit: int = 5) -> List[dict]:
        """
        Rank active services by how many pending reservations include them.

        Results are cached; cache errors fall back to the database.

        Returns:
            List[dict]: ``{"id", "description", "price", "reservations"}``
                ordered by count descending
        """
        with CacheManager(STATS_CACHE) as cache:
            cached = cache.get(limit=limit)
            if cached is not None:
                return cached

            usage = func.count(Reservation.id).label("reservations")
            with MetricsCollector("select"):
                rows = (
                    self.db.query(Service, usage)
                    .join(reservation_services, reservation_services.c.service_id == Service.id)
                    .join(Reservation, Reservation.id == reservation_services.c.reservation_id)
                    .filter(
                        Service.is_active == True,  # noqa: E712
                        Reservation.state == ReservationState.PENDING.value,
                    )
                    .group_by(Service.id)
                    .order_by(usage.desc(), Service.id.asc())
                    .limit(limit)
                    .all()
                )
            ranking = [
                {
                    "id": service.id,
                    "description": service.description,
                    "price": float(service.price),
                    "reservations": count,
                }
                for service, count in rows
            ]
            cache.set(ranking, limit=limit)
            return ranking
