from typing import Any, Callable, Dict, List, TypeVar, Generic
from pydantic import BaseModel

T = TypeVar('T')

class PaginatedResponse(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    size: int
    has_next: bool
    has_previous: bool
    total_pages: int


def paginated(result: Dict[str, Any], serializer: Callable[[Any], T]) -> PaginatedResponse[T]:
    """Wrap a BaseService.get_paginated result, serializing each item"""
    return PaginatedResponse(
        items=[serializer(item) for item in result["items"]],
        total=result["total"],
        page=result["page"],
        size=result["size"],
        has_next=result["has_next"],
        has_previous=result["has_previous"],
        total_pages=result["total_pages"],
    )
