"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models inherit from
BaseResponseSchema.
"""

from math import ceil
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.networks import validate_email


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class PromoterResponse(BaseResponseSchema):
            id: UUID
            business_name: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Unknown fields are ignored (forward compatibility).
    """
    model_config = ConfigDict(
        extra='ignore',
        str_strip_whitespace=True,
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
        str_strip_whitespace=True,
    )


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        return cls(page=page, limit=limit, total=total, pages=ceil(total / limit) if limit else 0)


SortOrder = Literal["asc", "desc"]


def check_email_address(value: str) -> str:
    """Validate an email address and return it exactly as submitted."""
    if "<" in value:
        raise ValueError("Enter a valid email address")
    validate_email(value)
    return value
