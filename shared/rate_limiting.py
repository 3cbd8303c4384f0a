"""
Rate Limiting

This module implements API rate limiting to prevent abuse and ensure
fair usage.

Features:
- Per-IP rate limiting
- Per-token rate limiting (authenticated)
- Configurable limits per endpoint type
- Storage configurable through RATE_LIMIT_STORAGE_URI (Redis in
  production, in-process memory by default)
"""

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from typing import Callable
import hashlib
import os

RATE_LIMIT_STORAGE_URI = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "1") == "1"


def get_user_identifier(request: Request) -> str:
    """
    Get unique identifier for rate limiting.

    Uses a digest of the bearer token if present, otherwise falls back
    to the client IP address.

    Args:
        request: FastAPI request object

    Returns:
        str: Unique identifier for the user/IP
    """
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() == "bearer" and token:
        return "token_" + hashlib.sha256(token.encode()).hexdigest()[:16]

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=RATE_LIMIT_STORAGE_URI,
    enabled=RATE_LIMIT_ENABLED,
)

RATE_LIMITS = {
    "auth": "10/minute",      # Login/refresh endpoints
    "default": "60/minute"    # Default limit
}


def get_rate_limit(endpoint_type: str = "default") -> str:
    """
    Get rate limit string for endpoint type.

    Args:
        endpoint_type: Type of endpoint (auth or default)

    Returns:
        str: Rate limit string (e.g., "10/minute")
    """
    return RATE_LIMITS.get(endpoint_type, RATE_LIMITS["default"])


def rate_limit_decorator(limit_type: str = "default"):
    """
    Decorator factory for applying rate limits to endpoints.

    The decorated endpoint must accept a ``request: Request`` parameter.

    Example:
        @app.post("/auth/login")
        @rate_limit_decorator("auth")
        def login(request: Request, ...):
            pass
    """
    def decorator(func: Callable):
        return limiter.limit(get_rate_limit(limit_type))(func)
    return decorator


def setup_rate_limiting(app):
    """
    Set up rate limiting for FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def reset_rate_limits():
    """Clear every counter held by the limiter storage."""
    limiter.reset()
