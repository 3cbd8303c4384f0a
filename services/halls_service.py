"""
Halls Service

This service manages the event halls ("salones") that can be booked.

Endpoints:
    - GET /halls: Browse halls (search, pagination)
    - GET /halls/available: Halls free for a time slot on a date
    - GET /halls/{hall_id}: Get specific hall details
    - POST /halls: Add a new hall (staff)
    - PUT /halls/{hall_id}: Replace hall details (staff)
    - PATCH /halls/{hall_id}: Update some hall details (staff)
    - DELETE /halls/{hall_id}: Deactivate a hall (staff)
    - PATCH /halls/{hall_id}/restore: Reactivate a hall (staff)
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from sqlalchemy.orm import Session
from datetime import date, datetime
import logging

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import get_db, init_db
from shared.access_policy import Operation, authorize, require_operation
from shared.auth import Principal
from shared.errors import register_error_handlers
from shared.halls import HallRegistry
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


app = FastAPI(title="Halls Service", version="1.0.0", lifespan=lifespan)
register_error_handlers(app)
setup_metrics(app, "halls")

require_browse = require_operation(Operation.CATALOG_BROWSE)
require_manager = require_operation(Operation.CATALOG_MANAGE)
require_restore = require_operation(Operation.CATALOG_RESTORE)


class HallCreate(BaseModel):
    """Hall creation request model."""
    title: str = Field(..., min_length=1, max_length=255)
    address: str = Field(..., min_length=1, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    capacity: Optional[int] = Field(None, gt=0)
    price: float = Field(..., ge=0)


class HallUpdate(BaseModel):
    """Partial hall update request model."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    address: Optional[str] = Field(None, min_length=1, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    capacity: Optional[int] = Field(None, gt=0)
    price: Optional[float] = Field(None, ge=0)

    @field_validator("title", "address", "price")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class HallResponse(BaseModel):
    """Hall response model."""
    id: int
    title: str
    address: str
    latitude: Optional[float]
    longitude: Optional[float]
    capacity: Optional[int]
    price: float
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HallListResponse(BaseModel):
    """Paginated hall list."""
    data: List[HallResponse]
    pagination: PaginationMeta


@app.get("/halls", response_model=HallListResponse)
def list_halls(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Match title or address"),
    include_inactive: bool = Query(False, description="Staff only"),
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """
    Browse halls.

    Args:
        page: Page number
        limit: Page size
        search: Free-text filter on title and address
        include_inactive: Also list deactivated halls (staff only)
        principal: Authenticated user
        db: Database session

    Returns:
        HallListResponse: One page of halls plus pagination data
    """
    if include_inactive:
        authorize(principal, Operation.CATALOG_BROWSE_INACTIVE)
    result = HallRegistry(db).list(page, limit, search, include_inactive)
    return HallListResponse(
        data=[HallResponse.model_validate(hall) for hall in result.items],
        pagination=result.meta
    )


@app.get("/halls/available", response_model=List[HallResponse])
def available_halls(
    on_date: date = Query(..., alias="date", description="Event date (YYYY-MM-DD)"),
    time_slot_id: int = Query(..., gt=0),
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """
    List active halls with no pending reservation for the slot on the date.

    Raises:
        NotFound: Unknown or inactive time slot
    """
    return HallRegistry(db).get_available_for(on_date, time_slot_id)


@app.get("/halls/{hall_id}", response_model=HallResponse)
def get_hall(
    hall_id: int,
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """Get a hall; deactivated halls are visible to staff only."""
    return HallRegistry(db).get(hall_id, include_inactive=principal.is_staff)


@app.post("/halls", response_model=HallResponse, status_code=status.HTTP_201_CREATED)
def create_hall(
    hall_data: HallCreate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Add a new hall.

    Args:
        hall_data: Hall creation data
        principal: Authenticated administrator or employee
        db: Database session

    Returns:
        HallResponse: Created hall

    Raises:
        DuplicateEntry: An active hall has the same title and address (409)
    """
    return HallRegistry(db).create(hall_data.model_dump())


@app.put("/halls/{hall_id}", response_model=HallResponse)
def replace_hall(
    hall_id: int,
    hall_data: HallCreate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """Replace every field of a hall."""
    return HallRegistry(db).update(hall_id, hall_data.model_dump())


@app.patch("/halls/{hall_id}", response_model=HallResponse)
def update_hall(
    hall_id: int,
    hall_data: HallUpdate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """Update only the fields sent."""
    return HallRegistry(db).update(hall_id, hall_data.model_dump(exclude_unset=True))


@app.delete("/halls/{hall_id}", response_model=HallResponse)
def delete_hall(
    hall_id: int,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Deactivate a hall.

    Raises:
        ReferencedByActiveReservation: A pending reservation uses the hall (409)
    """
    hall = HallRegistry(db).soft_delete(hall_id)
    logger.info(f"Hall {hall_id} deactivated by user {principal.user_id}")
    return hall


@app.patch("/halls/{hall_id}/restore", response_model=HallResponse)
def restore_hall(
    hall_id: int,
    principal: Principal = Depends(require_restore),
    db: Session = Depends(get_db)
):
    """Reactivate a hall."""
    return HallRegistry(db).restore(hall_id)


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "service": "halls"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8002)
