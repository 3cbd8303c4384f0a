"""
Time Slots Service

This service manages the time slots ("turnos") halls are booked by.
No two active slots may overlap.

Endpoints:
    - GET /time-slots: Browse time slots ordered by ordinal
    - GET /time-slots/available: Slots free for a hall on a date
    - GET /time-slots/{slot_id}: Get specific time slot
    - POST /time-slots: Add a time slot (staff)
    - PUT /time-slots/{slot_id}: Replace a time slot (staff)
    - PATCH /time-slots/{slot_id}: Update some fields (staff)
    - DELETE /time-slots/{slot_id}: Deactivate a time slot (staff)
    - PATCH /time-slots/{slot_id}/restore: Reactivate a time slot (staff)
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from sqlalchemy.orm import Session
from datetime import date, datetime, time
import logging

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import get_db, init_db
from shared.access_policy import Operation, authorize, require_operation
from shared.auth import Principal
from shared.errors import register_error_handlers
from shared.monitoring import setup_metrics
from shared.pagination import PaginationMeta
from shared.time_slots import TimeSlotRegistry

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


app = FastAPI(title="Time Slots Service", version="1.0.0", lifespan=lifespan)
register_error_handlers(app)
setup_metrics(app, "time_slots")

require_browse = require_operation(Operation.CATALOG_BROWSE)
require_manager = require_operation(Operation.CATALOG_MANAGE)
require_restore = require_operation(Operation.CATALOG_RESTORE)


class TimeSlotCreate(BaseModel):
    """Time slot creation request model."""
    start_time: time
    end_time: time
    ordinal: Optional[int] = Field(None, ge=1)


class TimeSlotReplace(BaseModel):
    """Full time slot update request model."""
    start_time: time
    end_time: time
    ordinal: int = Field(..., ge=1)


class TimeSlotUpdate(BaseModel):
    """Partial time slot update request model."""
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    ordinal: Optional[int] = Field(None, ge=1)

    @field_validator("start_time", "end_time", "ordinal")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class TimeSlotResponse(BaseModel):
    """Time slot response model."""
    id: int
    ordinal: int
    start_time: time
    end_time: time
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TimeSlotListResponse(BaseModel):
    """Paginated time slot list."""
    data: List[TimeSlotResponse]
    pagination: PaginationMeta


@app.get("/time-slots", response_model=TimeSlotListResponse)
def list_time_slots(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    include_inactive: bool = Query(False, description="Staff only"),
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """
    Browse time slots, active first, then by ordinal.

    Args:
        page: Page number
        limit: Page size
        include_inactive: Also list deactivated slots (staff only)
        principal: Authenticated user
        db: Database session

    Returns:
        TimeSlotListResponse: One page of slots plus pagination data
    """
    if include_inactive:
        authorize(principal, Operation.CATALOG_BROWSE_INACTIVE)
    result = TimeSlotRegistry(db).list(page, limit, include_inactive)
    return TimeSlotListResponse(
        data=[TimeSlotResponse.model_validate(slot) for slot in result.items],
        pagination=result.meta
    )


@app.get("/time-slots/available", response_model=List[TimeSlotResponse])
def available_time_slots(
    on_date: date = Query(..., alias="date", description="Event date (YYYY-MM-DD)"),
    hall_id: int = Query(..., gt=0),
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """
    List active slots with no pending reservation for the hall on the date.

    Raises:
        NotFound: Unknown or inactive hall
    """
    return TimeSlotRegistry(db).get_available_for(on_date, hall_id)


@app.get("/time-slots/{slot_id}", response_model=TimeSlotResponse)
def get_time_slot(
    slot_id: int,
    principal: Principal = Depends(require_browse),
    db: Session = Depends(get_db)
):
    """Get a time slot; deactivated slots are visible to staff only."""
    return TimeSlotRegistry(db).get(slot_id, include_inactive=principal.is_staff)


@app.post("/time-slots", response_model=TimeSlotResponse, status_code=status.HTTP_201_CREATED)
def create_time_slot(
    slot_data: TimeSlotCreate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Add a time slot.

    Args:
        slot_data: Start, end and optional ordinal
        principal: Authenticated administrator or employee
        db: Database session

    Returns:
        TimeSlotResponse: Created slot

    Raises:
        ValidationError: start_time not before end_time (400)
        SchedulingConflict: Overlaps an active slot (409)
    """
    return TimeSlotRegistry(db).create(slot_data.start_time, slot_data.end_time, slot_data.ordinal)


@app.put("/time-slots/{slot_id}", response_model=TimeSlotResponse)
def replace_time_slot(
    slot_id: int,
    slot_data: TimeSlotReplace,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """Replace every field of a time slot."""
    return TimeSlotRegistry(db).update(slot_id, slot_data.model_dump())


@app.patch("/time-slots/{slot_id}", response_model=TimeSlotResponse)
def update_time_slot(
    slot_id: int,
    slot_data: TimeSlotUpdate,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """Update only the fields sent; a moved range is re-checked for overlap."""
    return TimeSlotRegistry(db).update(slot_id, slot_data.model_dump(exclude_unset=True))


@app.delete("/time-slots/{slot_id}", response_model=TimeSlotResponse)
def delete_time_slot(
    slot_id: int,
    principal: Principal = Depends(require_manager),
    db: Session = Depends(get_db)
):
    """
    Deactivate a time slot.

    Raises:
        ReferencedByActiveReservation: A pending reservation uses the slot (409)
    """
    slot = TimeSlotRegistry(db).soft_delete(slot_id)
    logger.info(f"Time slot {slot_id} deactivated by user {principal.user_id}")
    return slot


@app.patch("/time-slots/{slot_id}/restore", response_model=TimeSlotResponse)
def restore_time_slot(
    slot_id: int,
    principal: Principal = Depends(require_restore),
    db: Session = Depends(get_db)
):
    """Reactivate a time slot unless an active slot now overlaps it."""
    return TimeSlotRegistry(db).restore(slot_id)


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "service": "time_slots"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8003)
