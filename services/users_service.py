"""
Users Service

This service manages authentication and user accounts.

Endpoints:
    - POST /auth/login: Exchange email and password for a JWT
    - GET /auth/me: Profile of the authenticated user
    - POST /auth/refresh: Re-issue a token for a still active user
    - GET /users: Browse users (admin only)
    - GET /users/stats: Active users per role (admin only)
    - GET /users/{user_id}: Get specific user (admin only)
    - POST /users: Create a user (admin only)
    - PUT /users/{user_id}: Replace user details (admin only)
    - PATCH /users/{user_id}: Update some user details (admin only)
    - DELETE /users/{user_id}: Deactivate a user (admin only)
    - PATCH /users/{user_id}/restore: Reactivate a user (admin only)
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, Query, Request, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List
from sqlalchemy.orm import Session
from datetime import datetime
import logging

import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import get_db, init_db
from shared.access_policy import Operation, require_operation
from shared.auth import Principal, create_user_token, get_current_principal
from shared.errors import register_error_handlers
from shared.monitoring import setup_metrics, track_jwt_issued
from shared.pagination import PaginationMeta
from shared.rate_limiting import rate_limit_decorator, setup_rate_limiting
from shared.users import UserRegistry

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


app = FastAPI(title="Users Service", version="1.0.0", lifespan=lifespan)
register_error_handlers(app)
setup_rate_limiting(app)
setup_metrics(app, "users")

require_admin = require_operation(Operation.USER_MANAGE)


class LoginRequest(BaseModel):
    """Login request model."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserCreate(BaseModel):
    """User creation request model."""
    name: str = Field(..., min_length=1, max_length=50)
    surname: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: int = Field(3, ge=1, le=3)
    phone: Optional[str] = Field(None, max_length=30)
    photo: Optional[str] = Field(None, max_length=255)


class UserReplace(BaseModel):
    """Full user update request model (password optional)."""
    name: str = Field(..., min_length=1, max_length=50)
    surname: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    role: int = Field(..., ge=1, le=3)
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[str] = Field(None, max_length=30)
    photo: Optional[str] = Field(None, max_length=255)


class UserUpdate(BaseModel):
    """Partial user update request model."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    surname: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[int] = Field(None, ge=1, le=3)
    password: Optional[str] = Field(None, min_length=6)
    phone: Optional[str] = Field(None, max_length=30)
    photo: Optional[str] = Field(None, max_length=255)

    @field_validator("name", "surname", "email", "role")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class UserResponse(BaseModel):
    """User response model."""
    id: int
    name: str
    surname: str
    email: str
    role: int
    role_label: str
    phone: Optional[str]
    photo: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    """Paginated user list."""
    data: List[UserResponse]
    pagination: PaginationMeta


class TokenResponse(BaseModel):
    """Token response model."""
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class RoleCount(BaseModel):
    role: int
    label: str
    count: int


class UserStatsResponse(BaseModel):
    """Active users per role."""
    total: int
    by_role: List[RoleCount]


def _issue_token(user) -> TokenResponse:
    token = create_user_token(user)
    track_jwt_issued()
    return TokenResponse(access_token=token, user=UserResponse.model_validate(user))


@app.post("/auth/login", response_model=TokenResponse)
@rate_limit_decorator("auth")
def login(request: Request, login_data: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate a user and return a JWT token.

    Args:
        request: Incoming request (used by the rate limiter)
        login_data: Email and password
        db: Database session

    Returns:
        TokenResponse: Access token and the user's profile

    Raises:
        Unauthorized: Unknown email, inactive user or wrong password
    """
    user = UserRegistry(db).authenticate(login_data.email, login_data.password)
    logger.info(f"User {user.id} logged in")
    return _issue_token(user)


@app.get("/auth/me", response_model=UserResponse)
def get_profile(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Return the authenticated user's profile."""
    return UserRegistry(db).get(principal.user_id)


@app.post("/auth/refresh", response_model=TokenResponse)
@rate_limit_decorator("auth")
def refresh_token(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """
    Issue a fresh token for the authenticated user.

    The principal dependency already rejected inactive or deleted users.
    """
    user = UserRegistry(db).get(principal.user_id)
    return _issue_token(user)


@app.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, description="Match name, surname or email"),
    role: Optional[int] = Query(None, ge=1, le=3),
    include_inactive: bool = Query(False),
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Browse users.

    Args:
        page: Page number
        limit: Page size
        search: Free-text filter
        role: Role filter
        include_inactive: Also list deactivated users
        principal: Authenticated administrator
        db: Database session

    Returns:
        UserListResponse: One page of users plus pagination data
    """
    result = UserRegistry(db).list(page, limit, search, role, include_inactive)
    return UserListResponse(
        data=[UserResponse.model_validate(user) for user in result.items],
        pagination=result.meta
    )


@app.get("/users/stats", response_model=UserStatsResponse)
def user_stats(
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Count active users per role."""
    return UserRegistry(db).stats_by_role()


@app.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Get a user by id, active or not."""
    return UserRegistry(db).get(user_id)


@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    user_data: UserCreate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Create a user.

    Raises:
        DuplicateEntry: Email already used by an active user (409)
    """
    user = UserRegistry(db).create(user_data.model_dump())
    logger.info(f"User {user.id} created by admin {principal.user_id}")
    return user


@app.put("/users/{user_id}", response_model=UserResponse)
def replace_user(
    user_id: int,
    user_data: UserReplace,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Replace a user's details; the password changes only if given."""
    changes = user_data.model_dump()
    if changes.get("password") is None:
        changes.pop("password")
    return UserRegistry(db).update(user_id, changes)


@app.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    user_data: UserUpdate,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Update only the fields sent."""
    return UserRegistry(db).update(user_id, user_data.model_dump(exclude_unset=True))


@app.delete("/users/{user_id}", response_model=UserResponse)
def delete_user(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Deactivate a user.

    Raises:
        ReferencedByActiveReservation: The user owns a pending reservation (409)
        Conflict: Already inactive, or an admin deactivating themselves (409)
    """
    return UserRegistry(db).soft_delete(user_id, acting_user_id=principal.user_id)


@app.patch("/users/{user_id}/restore", response_model=UserResponse)
def restore_user(
    user_id: int,
    principal: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Reactivate a user."""
    return UserRegistry(db).restore(user_id)


@app.get("/health")
def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "service": "users"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
