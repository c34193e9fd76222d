"""
Shared pydantic building blocks.

Documents are exchanged with the front-end in camelCase; Python code uses
snake_case attributes. Identifiers are 24-character hex strings.
"""

import re
import uuid
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


OBJECT_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")

T = TypeVar("T")


def new_object_id() -> str:
    """Generate a 24-hex identifier for documents and sub-documents."""
    return uuid.uuid4().hex[:24]


def is_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
        validate_assignment=True,
        validate_default=True,
    )

    def to_document(self) -> dict:
        """JSON-compatible dict as stored and returned by the API."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""

    success: bool = True
    data: Optional[T] = None
    message: Optional[str] = None
    error: Optional[str] = None


class Page(BaseModel, Generic[T]):
    """Paginated list response."""

    model_config = ConfigDict(populate_by_name=True)

    data: List[T] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = Field(default=10, alias="pageSize")


def envelope(data: Any = None, message: Optional[str] = None) -> dict:
    """Success body: {success, data, message}."""
    return ApiResponse(data=data, message=message).model_dump(exclude_none=True)


def page_body(items: List[Any], total: int, page: int, page_size: int) -> dict:
    return Page(data=items, total=total, page=page, page_size=page_size).model_dump(by_alias=True)
