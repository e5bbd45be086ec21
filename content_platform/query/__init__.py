"""Safe dynamic queries: whitelisted ordering, bound parameters, paging and meta aggregation."""

from .builder import (
    Aggregation,
    AggregationChannel,
    MAX_PAGE,
    MAX_PAGE_SIZE,
    Predicate,
    QuerySpec,
    Statement,
    build,
    build_count,
    order_whitelist,
    page_offset,
)
from .paging import PagedResult, assemble, fetch_one, paginate

__all__ = [
    "Aggregation",
    "AggregationChannel",
    "MAX_PAGE",
    "MAX_PAGE_SIZE",
    "PagedResult",
    "Predicate",
    "QuerySpec",
    "Statement",
    "assemble",
    "build",
    "build_count",
    "fetch_one",
    "order_whitelist",
    "page_offset",
    "paginate",
]
