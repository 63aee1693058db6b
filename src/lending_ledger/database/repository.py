"""
Shared pieces of the Lending Ledger data access layer.

The three stores (inventory, ledger, audit) are separate repositories that
each open their own session per call. This module holds what they share:

1. **Exceptions**: a storage failure is always a ``StorageError``, so the
   coordinator can tell "the write did not happen" from a precondition miss
2. **Pagination**: history reads return the same ``PaginatedResponse`` shape
3. **Row conversion**: rows become pydantic models before leaving a store
"""

from typing import Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from .exceptions import (
    ConcurrentModificationError,
    DuplicateError,
    InvariantViolationError,
    NotFoundError,
    RepositoryException,
    StorageError,
)
from .session import safe_query

ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

__all__ = [
    "ConcurrentModificationError",
    "DuplicateError",
    "InvariantViolationError",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationParams",
    "RepositoryException",
    "StorageError",
    "paginate",
]


class PaginationParams(BaseModel):
    """Standard pagination parameters for history reads."""

    page: int = 1
    page_size: int = 20

    @property
    def offset(self) -> int:
        """Calculate offset for SQL queries."""
        return (self.page - 1) * self.page_size

    def validate_params(self) -> None:
        """Validate pagination parameters."""
        if self.page < 1:
            raise ValueError("Page must be >= 1")
        if self.page_size < 1 or self.page_size > 100:
            raise ValueError("Page size must be between 1 and 100")


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """
    Standard paginated response for history reads.

    This structure keeps ledger and audit listings consistent for callers
    such as the ``loan_history`` tool.
    """

    items: list[ResponseSchemaType]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


def paginate(
    session: Session,
    query: Select,
    pagination: PaginationParams,
    response_schema: type[ResponseSchemaType],
    error_msg: str,
) -> PaginatedResponse[ResponseSchemaType]:
    """
    Run ``query`` one page at a time and wrap the rows.

    Raises:
        ValueError: If the pagination parameters are out of range
        StorageError: On database errors
    """
    pagination.validate_params()

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (
        safe_query(session, lambda s: s.execute(count_query).scalar(), f"{error_msg} (count)")
        or 0
    )

    page_query = query.offset(pagination.offset).limit(pagination.page_size)
    rows = safe_query(session, lambda s: s.execute(page_query).scalars().all(), error_msg)

    return PaginatedResponse[response_schema](
        items=[response_schema.model_validate(row, from_attributes=True) for row in rows],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
        total_pages=(total + pagination.page_size - 1) // pagination.page_size,
        has_next=pagination.page * pagination.page_size < total,
        has_previous=pagination.page > 1,
    )
