"""Offset pagination over already-filtered result lists."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    total: int
    limit: Optional[int]
    offset: int

    @property
    def has_next(self) -> bool:
        return self.limit is not None and self.offset + len(self.items) < self.total


def paginate(rows: Sequence[T], limit: Optional[int] = None, offset: int = 0) -> Page[T]:
    if offset < 0:
        raise ValueError("offset must be >= 0")
    if limit is not None and limit < 1:
        raise ValueError("limit must be >= 1")
    end = None if limit is None else offset + limit
    return Page(items=list(rows[offset:end]), total=len(rows), limit=limit, offset=offset)
