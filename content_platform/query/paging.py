from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from content_platform.db import Store

from .builder import Aggregation, Predicate, QuerySpec, build, build_count


@dataclass
class PagedResult:
    page: int
    page_size: int
    all_count: int
    results: List[Any] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "all_count": self.all_count,
            "count": self.count,
            "results": self.results,
        }


def assemble(
    rows: Iterable[Dict[str, Any]],
    aggregation: Optional[Aggregation] = None,
    *,
    primary_key: str = "cid",
) -> List[Dict[str, Any]]:
    """Shape raw rows into result records.

    Without an aggregation rows map 1:1. With one, the outer-joined rows are
    grouped by the parent's primary key: each parent appears once, in the
    order it first appeared, carrying one list per channel sorted by child key.
    Parents without children get empty lists.
    """
    if aggregation is None:
        return [dict(r) for r in rows]

    prefix = aggregation.prefix
    child_key_col = prefix + aggregation.child_key
    disc_col = prefix + aggregation.discriminator
    by_discriminator = {ch.discriminator: ch.name for ch in aggregation.channels}

    parents: Dict[Any, Dict[str, Any]] = {}
    groups: Dict[Any, Dict[str, Dict[Any, Dict[str, Any]]]] = {}

    for row in rows:
        key = row[primary_key]
        if key not in parents:
            parents[key] = {k: v for k, v in row.items() if not k.startswith(prefix)}
            groups[key] = {ch.name: {} for ch in aggregation.channels}

        child_key = row.get(child_key_col)
        if child_key is None:
            continue
        channel = by_discriminator.get(row.get(disc_col))
        if channel is None:
            continue
        groups[key][channel].setdefault(
            child_key,
            {col: row.get(prefix + col) for col in aggregation.child_columns},
        )

    out: List[Dict[str, Any]] = []
    for key, parent in parents.items():
        merged = dict(parent)
        for ch in aggregation.channels:
            children = groups[key][ch.name]
            merged[ch.name] = [children[k] for k in sorted(children)]
        out.append(merged)
    return out


def paginate(
    store: Store,
    spec: QuerySpec,
    *,
    order_by: Optional[str],
    page: int,
    page_size: int,
    predicate: Optional[Predicate] = None,
    aggregate: bool = False,
    mapper: Optional[Callable[[Dict[str, Any]], Any]] = None,
) -> PagedResult:
    """Count + fetch one page of `spec`.

    The list statement is built (and the order key validated) before anything
    is sent to the store. `all_count` uses the same filters without joins.
    """
    list_spec = spec if aggregate else _plain(spec)
    stmt = build(list_spec, order_by, page, page_size, predicate)
    count_stmt = build_count(spec, predicate)

    all_count = int(store.scalar(*count_stmt) or 0)
    rows = store.fetch_all(*stmt)
    results: List[Any] = assemble(rows, list_spec.aggregation, primary_key=spec.primary_key)
    if mapper is not None:
        results = [mapper(r) for r in results]
    return PagedResult(page=page, page_size=page_size, all_count=all_count, results=results)


def fetch_one(
    store: Store,
    spec: QuerySpec,
    predicate: Predicate,
    *,
    aggregate: bool = False,
) -> Optional[Dict[str, Any]]:
    """First record of `spec` matching `predicate`, aggregated on request."""
    list_spec = spec if aggregate else _plain(spec)
    stmt = build(list_spec, None, 1, 1, predicate)
    results = assemble(store.fetch_all(*stmt), list_spec.aggregation, primary_key=spec.primary_key)
    return results[0] if results else None


def _plain(spec: QuerySpec) -> QuerySpec:
    if spec.aggregation is None:
        return spec
    return QuerySpec(
        table=spec.table,
        primary_key=spec.primary_key,
        whitelist=spec.whitelist,
        default_order_key=spec.default_order_key,
        alias=spec.alias,
        type_filter=spec.type_filter,
    )
