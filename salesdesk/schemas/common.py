"""
Common schemas used across the API.
"""

from typing import Generic, TypeVar, List
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime

T = TypeVar("T")


class CamelModel(BaseModel):
    """
    Base schema for the public API.

    Fields are declared in snake_case and serialized in camelCase. Request
    bodies are accepted in either form.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class PaginatedResponse(CamelModel, Generic[T]):
    """Generic paginated response wrapper."""

    items: List[T]
    total: int = Field(description="Total number of items matching filters")
    page: int = Field(description="Current page number")
    per_page: int = Field(description="Items per page")
    pages: int = Field(description="Total number of pages")

    @classmethod
    def create(
        cls,
        items: List[T],
        total: int,
        page: int,
        per_page: int,
    ) -> "PaginatedResponse[T]":
        """Factory method to create paginated response."""
        pages = (total + per_page - 1) // per_page if per_page > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            pages=pages,
        )


class HealthResponse(CamelModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    database: str = "healthy"
    timestamp: datetime
