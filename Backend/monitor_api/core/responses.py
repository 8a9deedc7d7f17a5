"""
Response envelope shared by every endpoint.

Success: ``{"code": 200, "message": "success", "data": ...}``
Error:   ``{"code": <http status>, "message": "..."}``
"""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import Field

from monitor_api.schemas.common import CamelModel

T = TypeVar("T")

SUCCESS_MESSAGE = "success"


class Pagination(CamelModel):
    """Pagination block of a paginated response."""

    page: int
    page_size: int
    total: int
    total_pages: int

    @classmethod
    def create(cls, total: int, page: int, page_size: int) -> "Pagination":
        total_pages = (total + page_size - 1) // page_size if page_size > 0 else 0
        return cls(page=page, page_size=page_size, total=total, total_pages=total_pages)


class PaginatedData(CamelModel, Generic[T]):
    """Generic paginated payload."""

    items: List[T] = Field(default_factory=list)
    pagination: Pagination


def success(data: Any = None) -> dict[str, Any]:
    """Wrap ``data`` in the success envelope; ``None`` omits the data key."""
    body: dict[str, Any] = {"code": 200, "message": SUCCESS_MESSAGE}
    if data is not None:
        body["data"] = data
    return body


def error_body(status_code: int, message: str, data: Optional[Any] = None) -> dict[str, Any]:
    """Build the error envelope; ``code`` mirrors the HTTP status."""
    body: dict[str, Any] = {"code": status_code, "message": message}
    if data is not None:
        body["data"] = data
    return body


def paginated(items: List[Any], total: int, page: int, page_size: int) -> dict[str, Any]:
    """Wrap a page of items in the success envelope."""
    return success(
        PaginatedData[Any](
            items=items,
            pagination=Pagination.create(total=total, page=page, page_size=page_size),
        )
    )
