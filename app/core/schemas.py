import math
from datetime import datetime
from typing import Annotated, Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field, StringConstraints

T = TypeVar("T")

# Surrounding whitespace is dropped before the length check, so "   " is rejected as empty.
ShortText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class PaginationParams(BaseModel):
    """1-based page and page size, already validated by the route's Query bounds."""

    page: int = Field(1, ge=1, description="1-based page number")
    limit: int = Field(20, ge=1, le=100, description="Items per page (max 100)")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int = Field(..., ge=0, description="Total count matching the query")
    page: int = Field(..., ge=1, description="Current page")
    limit: int = Field(..., ge=1, le=100, description="Page size")
    total_pages: int = Field(..., ge=0, description="Total pages")
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, items: List[T], total: int, params: PaginationParams) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=params.page,
            limit=params.limit,
            total_pages=math.ceil(total / params.limit) if total else 0,
            has_next=params.offset + params.limit < total,
            has_prev=params.page > 1,
        )


class ErrorInfo(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorInfo


class HealthStatus(BaseModel):
    status: str
    version: str
    database: str
    timestamp: datetime
