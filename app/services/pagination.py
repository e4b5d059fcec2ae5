import math
from typing import List, NamedTuple, Optional, TypeVar

from app.core.config import DEFAULT_LIMIT, DEFAULT_PAGE
from app.schemas.order import PaginatedResult

T = TypeVar("T")


class PaginationParams(NamedTuple):
    page: int
    limit: int
    skip: int


class SearchPaginationParams(NamedTuple):
    from_: int
    size: int
    page: int
    limit: int


def get_pagination_params(page: Optional[int] = None, limit: Optional[int] = None) -> PaginationParams:
    """Missing (or zero) page/limit fall back to the defaults."""
    page = page or DEFAULT_PAGE
    limit = limit or DEFAULT_LIMIT
    return PaginationParams(page=page, limit=limit, skip=(page - 1) * limit)


def get_search_pagination_params(page: Optional[int] = None, limit: Optional[int] = None) -> SearchPaginationParams:
    """Same arithmetic expressed as the index store's from/size."""
    params = get_pagination_params(page, limit)
    return SearchPaginationParams(from_=params.skip, size=params.limit, page=params.page, limit=params.limit)


def total_pages(total: int, limit: int) -> int:
    if total <= 0 or limit <= 0:
        return 0
    return math.ceil(total / limit)


def create_paginated_result(data: List[T], total: int, page: int, limit: int) -> PaginatedResult:
    return PaginatedResult(
        data=data,
        total=total,
        page=page,
        limit=limit,
        pages=total_pages(total, limit),
    )
