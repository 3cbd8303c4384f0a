"""
Shared utility functions for authentication and security.

This module provides JWT token generation, password hashing, the
authenticated principal dependency used by every service, and other
security-related utilities.
"""

from passlib.context import CryptContext
from jose import JWTError, jwt
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import html
import os
import re

from shared.database import get_db
from shared.errors import Unauthorized
from shared.models import STAFF_ROLES, User, UserRole

SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
TOKEN_ISSUER = "salones-api"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated actor: the user id and the role it acts with."""
    user_id: int
    role: UserRole

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        plain_password (str): Plain text password
        hashed_password (str): Hashed password

    Returns:
        bool: True if password matches, False otherwise

    Example:
        >>> hashed = get_password_hash("mypassword")
        >>> verify_password("mypassword", hashed)
        True
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password.

    Args:
        password (str): Plain text password

    Returns:
        str: Hashed password
    """
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data (dict): Data to encode in the token
        expires_delta (timedelta, optional): Token expiration time

    Returns:
        str: JWT token

    Example:
        >>> token = create_access_token({"sub": "1", "role": 3})
        >>> len(token) > 0
        True
    """
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "iss": TOKEN_ISSUER})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def create_user_token(user: User) -> str:
    """Issue a token whose subject is the user id."""
    return create_access_token(data={"sub": str(user.id), "role": int(user.role), "email": user.email})


def decode_access_token(token: str) -> Optional[dict]:
    """
    Decode a JWT access token.

    Args:
        token (str): JWT token

    Returns:
        dict: Decoded token data or None if invalid or expired
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM], issuer=TOKEN_ISSUER)
        return payload
    except JWTError:
        return None


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Principal:
    """
    Resolve the bearer token into a principal.

    The user named by the token must still exist and be active; the role
    is taken from the database so a role change applies immediately.

    Raises:
        Unauthorized: If the token is missing, invalid, expired, or the
            user is gone or inactive
    """
    if credentials is None:
        raise Unauthorized("Access token required")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise Unauthorized("Invalid or expired token")

    subject = payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise Unauthorized("Invalid authentication credentials")

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise Unauthorized("User not found or inactive")

    return Principal(user_id=user.id, role=UserRole(user.role))


def sanitize_input(input_str: str) -> str:
    """
    Sanitize user input to prevent injection attacks.

    Args:
        input_str (str): Input string to sanitize

    Returns:
        str: Sanitized string

    Example:
        >>> sanitize_input("<script>alert('xss')</script>")
        '&lt;script&gt;alert(&#x27;xss&#x27;)&lt;/script&gt;'
    """
    if input_str is None:
        return ""
    return html.escape(str(input_str).strip())


def normalize_email(email: str) -> str:
    """Lower-case and trim an email used as a login identifier."""
    return email.strip().lower()


def validate_email(email: str) -> bool:
    """
    Validate email format.

    Example:
        >>> validate_email("user@example.com")
        True
        >>> validate_email("invalid-email")
        False
    """
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))
