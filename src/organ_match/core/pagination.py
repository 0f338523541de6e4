"""
Pagination primitives shared by every listing
"""

from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """One page of a filtered, sorted listing"""
    items: List[T] = field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total

    def pagination(self) -> "PaginationInfo":
        return PaginationInfo(
            limit=self.limit,
            offset=self.offset,
            has_more=self.has_more
        )


def paginate(items: List[T], limit: int, offset: int) -> Page[T]:
    """Slice an already sorted list; total counts the unsliced list"""
    return Page(
        items=items[offset:offset + limit],
        total=len(items),
        limit=limit,
        offset=offset
    )


class PaginationInfo(BaseModel):
    limit: int
    offset: int
    has_more: bool
