"""
Services Service

This service manages the bookable add-on services (sound, catering,
decoration, ...) that can be attached to a reservation.

Endpoints:
    - GET /services: Browse services (search, pagination)
    - GET /services/stats/most-used: Services in most pending reservations
    - GET /services/{service_id}: Get specific service
    - POST /services: Add a service (staff)
    - PUT /services/{service_id}: Replace a service (staff)
    - PATCH /services/{service_id}: Update some fields (staff)
    - DELETE /services/{service_id}: Deactivate a service (staff)
    - PATCH /services/{service_id}/restore: Reactivate a service (staff)
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from sqlalchemy.orm import Session
from datetime import datetime
import logging

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import get_db, init_db
from shared.access_policy import Operation, authorize, require_operation
from shared.addons import ServiceRegistry
from shared.auth import Principal
from shared.errors import register_error_handlers
from shared.monitoring import setup_metrics
from shared.pagination import PaginationMeta

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


app = FastAPI(title="Services Service", version="1.0.0", lifespan=lifespan)
register_error_handlers(app)
setup_metrics(app, "services")

require_browse = require_operation(Operation.CATALOG_BROWSE)
require_manager = require_operation(Operation.CATALOG_MANAGE)
require_restore = require_operation(Operation.CATALOG_RESTORE)


class ServiceCreate(BaseModel):
    """Service creation request model."""
    description: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)


class ServiceUpdate(BaseModel):
    """Partial service update request model."""
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[float] = Field(None, ge=0)

    @field_validator("description", "price")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class ServiceResponse(BaseModel):
    """Service response model."""
    id: int
    description: str
    price: float
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ServiceListResponse(BaseModel):
    """Paginated service list."""
    data: List[ServiceResponse]
    pagination: PaginationMeta


class ServiceUsage(BaseModel):
    """One entry of the most-used ranking."""
    id: int
    description: str
    price: float
    reservations: int


@app.get("/services", response_model=ServiceListResponse)
def list_services(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Match description"),
    include_inactive: bool = Query(False, description="Staff only"),
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """
    Browse services.

    Returns:
        ServiceListResponse: One page of services plus pagination data
    """
    if include_inactive:
        authorize(principal, Operation.CATALOG_BROWSE_INACTIVE)
    result = ServiceRegistry(db).list(page, limit, search, include_inactive)
    return ServiceListResponse(
        data=[ServiceResponse.model_validate(service) for service in result.items],
        pagination=result.meta
    )


@app.get("/services/stats/most-used", response_model=List[ServiceUsage])
def most_used_services(
    limit: int = Query(5, ge=1, le=50),
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Rank active services by the number of pending reservations using them.

    Args:
        limit: Number of services to return
        principal: Authenticated administrator or employee
        db: Database session

    Returns:
        List[ServiceUsage]: Ranking, most used first
    """
    return ServiceRegistry(db).most_used(limit)


@app.get("/services/{service_id}", response_model=ServiceResponse)
def get_service(
    service_id: int,
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """Get a service; deactivated services are visible to staff only."""
    return ServiceRegistry(db).get(service_id, include_inactive=principal.is_staff)


@app.post("/services", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    service_data: ServiceCreate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Add a service.

    Raises:
        DuplicateEntry: An active service has the same description (409)
    """
    return ServiceRegistry(db).create(service_data.description, service_data.price)


@app.put("/services/{service_id}", response_model=ServiceResponse)
def replace_service(
    service_id: int,
    service_data: ServiceCreate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """Replace every field of a service."""
    return ServiceRegistry(db).update(service_id, service_data.model_dump())


@app.patch("/services/{service_id}", response_model=ServiceResponse)
def update_service(
    service_id: int,
    service_data: ServiceUpdate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """Update only the fields sent."""
    return ServiceRegistry(db).update(service_id, service_data.model_dump(exclude_unset=True))


@app.delete("/services/{service_id}", response_model=ServiceResponse)
def delete_service(
    service_id: int,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Deactivate a service.

    Raises:
        ReferencedByActiveReservation: A pending reservation includes it (409)
    """
    service = ServiceRegistry(db).soft_delete(service_id)
    logger.info(f"Service {service_id} deactivated by user {principal.user_id}")
    return service


@app.patch("/services/{service_id}/restore", response_model=ServiceResponse)
def restore_service(
    service_id: int,
    principal: Principal = Depends(require_restore),
    db: Session = Depends(get_db)
):
    """Reactivate a service."""
    return ServiceRegistry(db).restore(service_id)


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "service": "services"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8004)
