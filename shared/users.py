"""
User registry and credential checks.

Emails are stored trimmed and lower-cased and are unique among active
users. A user who owns a pending reservation cannot be deactivated and
keeps the client role until it is settled.
"""

import logging
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shared.auth import get_password_hash, normalize_email, validate_email, verify_password
from shared.caching import CacheManager
from shared.database import lock_table, transaction
from shared.errors import Conflict, DuplicateEntry, NotFound, Unauthorized, ValidationError
from shared.halls import clean_text
from shared.models import ROLE_LABELS, User, UserRole
from shared.monitoring import track_auth_attempt, update_user_count
from shared.pagination import Page, paginate
from shared.soft_delete import count_active_reservations, deactivate, lock_row, reactivate

logger = logging.getLogger(__name__)

STATS_CACHE = "user_stats"
PROFILE_FIELDS = ("name", "surname", "phone", "photo")


def _check_role(role: int) -> UserRole:
    try:
        return UserRole(role)
    except ValueError:
        raise ValidationError("Role must be 1 (admin), 2 (employee) or 3 (client)", field="role")


def _check_email(email: str) -> str:
    email = normalize_email(email)
    if not validate_email(email):
        raise ValidationError("Invalid email address", field="email")
    return email


class UserRegistry:
    """User operations bound to one database session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int, include_inactive: bool = True) -> User:
        """
        Get a user by id.

        Raises:
            NotFound: Unknown id, or inactive when include_inactive is False
        """
        user = self.db.get(User, user_id)
        if user is None or (not user.is_active and not include_inactive):
            raise NotFound(f"User {user_id} not found")
        return user

    def find_active_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(
            User.email == normalize_email(email),
            User.is_active == True,  # noqa: E712
        ).first()

    def list(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        role: Optional[int] = None,
        include_inactive: bool = False,
    ) -> Page:
        """Browse users, active first, then by surname and name."""
        query = self.db.query(User)
        if not include_inactive:
            query = query.filter(User.is_active == True)  # noqa: E712
        if role is not None:
            query = query.filter(User.role == int(_check_role(role)))
        if search:
            term = f"%{clean_text(search)}%"
            query = query.filter(or_(
                User.name.ilike(term), User.surname.ilike(term), User.email.ilike(term)
            ))
        query = query.order_by(User.is_active.desc(), User.surname.asc(), User.name.asc(), User.id.asc())
        return paginate(query, page, limit)

    def _ensure_unique(self, email: str, exclude_id: Optional[int] = None):
        query = self.db.query(User).filter(
            User.is_active == True,  # noqa: E712
            User.email == email,
        )
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise DuplicateEntry(f"Email {email} is already registered", field="email")

    def create(self, data: dict) -> User:
        """
        Register a user.

        Args:
            data: name, surname, email, password, and optional role
                (defaults to client), phone, photo

        Raises:
            ValidationError: Bad email or role
            DuplicateEntry: Email used by an active user
        """
        email = _check_email(data["email"])
        role = _check_role(data.get("role") or UserRole.CLIENT)

        with transaction(self.db):
            lock_table(self.db, User)
            self._ensure_unique(email)
            user = User(
                name=clean_text(data["name"]),
                surname=clean_text(data["surname"]),
                email=email,
                password_hash=get_password_hash(data["password"]),
                role=int(role),
                phone=clean_text(data.get("phone")),
                photo=data.get("photo"),
                is_active=True,
            )
            self.db.add(user)

        self.db.refresh(user)
        self._invalidate_stats()
        logger.info(f"User {user.id} registered with role {role.name}")
        return user

    def update(self, user_id: int, changes: dict) -> User:
        """
        Edit an active user. A new password is re-hashed.

        Raises:
            NotFound: Unknown or inactive user
            ValidationError: Bad email or role
            DuplicateEntry: New email used by another active user
            Conflict: Moving a client with pending reservations to a staff role
        """
        with transaction(self.db):
            lock_table(self.db, User)
            user = lock_row(self.db, User, user_id)
            if not user.is_active:
                raise NotFound(f"User {user_id} not found")

            for field in PROFILE_FIELDS:
                if field in changes:
                    value = changes[field]
                    setattr(user, field, value if field == "photo" else clean_text(value))
            if changes.get("email") is not None:
                user.email = _check_email(changes["email"])
                self._ensure_unique(user.email, exclude_id=user.id)
            if changes.get("role") is not None:
                role = _check_role(changes["role"])
                if (
                    user.role == UserRole.CLIENT
                    and role != UserRole.CLIENT
                    and count_active_reservations(self.db, user)
                ):
                    raise Conflict(
                        "Cannot change the role of a client with pending reservations",
                        field="role",
                    )
                user.role = int(role)
            if changes.get("password"):
                user.password_hash = get_password_hash(changes["password"])

        self.db.refresh(user)
        self._invalidate_stats()
        return user

    def soft_delete(self, user_id: int, acting_user_id: Optional[int] = None) -> User:
        """
        Deactivate a user.

        Raises:
            Conflict: An administrator deactivating their own account
            ReferencedByActiveReservation: The user owns a PENDING reservation
        """
        if acting_user_id is not None and acting_user_id == user_id:
            raise Conflict("You cannot deactivate your own account")

        with transaction(self.db):
            user = deactivate(self.db, User, user_id)
        self.db.refresh(user)
        self._invalidate_stats()
        return user

    def restore(self, user_id: int) -> User:
        """
        Reactivate a user.

        Raises:
            DuplicateEntry: Another active user registered the same email
        """
        with transaction(self.db):
            lock_table(self.db, User)
            user = reactivate(
                self.db, User, user_id,
                check=lambda u: self._ensure_unique(u.email, exclude_id=u.id),
            )
        self.db.refresh(user)
        self._invalidate_stats()
        return user

    def authenticate(self, email: str, password: str) -> User:
        """
        Check credentials of an active user.

        Raises:
            Unauthorized: Unknown email, inactive user or wrong password
        """
        user = self.find_active_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            track_auth_attempt(False)
            logger.info(f"Failed login for {normalize_email(email)}")
            raise Unauthorized("Incorrect email or password")

        track_auth_attempt(True)
        return user

    def stats_by_role(self) -> dict:
        """
        Count active users per role (cached).

        Returns:
            dict: ``{"total": n, "by_role": [{"role", "label", "count"}]}``
        """
        with CacheManager(STATS_CACHE) as cache:
            cached = cache.get(scope="by_role")
            if cached is not None:
                return cached

            counts = dict(
                self.db.query(User.role, func.count(User.id))
                .filter(User.is_active == True)  # noqa: E712
                .group_by(User.role)
                .all()
            )
            by_role = []
            for role in UserRole:
                count = counts.get(int(role), 0)
                update_user_count(role.name, count)
                by_role.append({"role": int(role), "label": ROLE_LABELS[role], "count": count})

            stats = {"total": sum(item["count"] for item in by_role), "by_role": by_role}
            cache.set(stats, scope="by_role")
            return stats

    def _invalidate_stats(self):
        with CacheManager(STATS_CACHE) as cache:
            cache.invalidate_all()
