"""Shared response envelope and base schema."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from harambee.config import get_settings
from harambee.errors import ValidationError

T = TypeVar("T")


class CamelModel(BaseModel):
    """Snake-case attributes in Python, camelCase keys on the wire (both accepted on input)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(BaseModel, Generic[T]):
    data: T


class Pagination(CamelModel):
    current: int
    total_pages: int
    count: int
    total_items: int


class Page(CamelModel, Generic[T]):
    items: list[T]
    pagination: Pagination


class Message(CamelModel):
    message: str


def paginate(items: list, total: int, page: int, limit: int) -> dict:
    """Build a Page payload; ``total_pages`` rounds up."""
    return {
        "items": items,
        "pagination": Pagination(
            current=page,
            total_pages=(total + limit - 1) // limit if limit else 0,
            count=len(items),
            total_items=total,
        ),
    }


def resolve_limit(limit: int | None, default: int | None = None, ceiling: int | None = None) -> int:
    """Apply the configured page size to a ``limit`` query parameter."""
    settings = get_settings()
    ceiling = ceiling or settings.max_page_size
    if limit is None:
        return min(default or settings.default_page_size, ceiling)
    if limit > ceiling:
        raise ValidationError(f"limit must be at most {ceiling}")
    return limit
