"""
Page/limit pagination over SQLAlchemy queries.
"""

import math
from dataclasses import dataclass
from typing import Generic, List, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Query

from shared.errors import ValidationError

T = TypeVar("T")

DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class PaginationMeta(BaseModel):
    """Pagination block returned with every browse endpoint."""
    total: int
    page: int
    limit: int
    total_pages: int


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def meta(self) -> PaginationMeta:
        return PaginationMeta(
            total=self.total,
            page=self.page,
            limit=self.limit,
            total_pages=math.ceil(self.total / self.limit),
        )


def paginate(query: Query, page: int = 1, limit: int = DEFAULT_LIMIT) -> Page:
    """
    Run a query one page at a time.

    Args:
        query: Query with its filters and ordering applied
        page: 1-based page number
        limit: Page size (1..100)

    Returns:
        Page: The rows of the requested page and the overall total

    Raises:
        ValidationError: If page or limit is out of range
    """
    if page < 1:
        raise ValidationError("Page must be 1 or greater", field="page")
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {MAX_LIMIT}", field="limit")

    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return Page(items=items, total=total, page=page, limit=limit)
