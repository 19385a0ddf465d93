from __future__ import annotations

import math
from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PageRequest(BaseModel):
    """1-indexed page window requested by the client."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return math.ceil(self.total / self.limit)

    def pagination(self) -> Pagination:
        return Pagination(total=self.total, page=self.page, limit=self.limit, totalPages=self.total_pages)
