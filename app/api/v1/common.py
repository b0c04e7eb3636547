"""
Response envelope shared by every endpoint.
"""

from typing import Generic, List, Optional, TypeVar
import math

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Uniform {success, message, data} envelope"""
    success: bool = True
    message: str
    data: Optional[T] = None


class Page(BaseModel, Generic[T]):
    """Paginated list"""
    items: List[T]
    total: int
    page: int
    size: int
    pages: int


def page_of(items: list, total: int, page: int, size: int) -> dict:
    return {
        "items": items,
        "total": total,
        "page": page,
        "size": size,
        "pages": math.ceil(total / size) if total > 0 else 1,
    }
