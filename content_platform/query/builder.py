"""Declarative SELECT builder.

A `QuerySpec` describes one listable resource: its table, the whitelist of
client-facing sort keys, an optional fixed type filter and an optional meta
aggregation. `build` turns a spec plus the client's order key and page into a
statement with positional parameters.

Only three kinds of text ever reach the SQL string: identifiers from the QuerySpec
(fixed in code), whitelisted ORDER BY fragments, and predicate SQL written in
code. Everything the client sends travels as a bound parameter or is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

from content_platform.errors import InvalidOrderKey


class Statement(NamedTuple):
    sql: str
    params: Tuple[Any, ...]


@dataclass(frozen=True)
class Predicate:
    """A WHERE fragment written in code, with `?` placeholders for its values."""

    sql: str
    params: Tuple[Any, ...] = ()

    @classmethod
    def all_of(cls, *preds: Optional["Predicate"]) -> Optional["Predicate"]:
        parts = [p for p in preds if p is not None and p.sql]
        if not parts:
            return None
        if len(parts) == 1:
            return parts[0]
        sql = " AND ".join(f"({p.sql})" for p in parts)
        params: List[Any] = []
        for p in parts:
            params.extend(p.params)
        return cls(sql, tuple(params))


def order_whitelist(alias: str, *columns: str) -> Dict[str, str]:
    """Map `col` / `-col` client keys to ascending / descending fragments."""
    out: Dict[str, str] = {}
    for col in columns:
        out[col] = f'{alias}."{col}"'
        out[f"-{col}"] = f'{alias}."{col}" DESC'
    return out


@dataclass(frozen=True)
class AggregationChannel:
    """One grouped child collection, e.g. `categories` for metas of type `category`."""

    name: str
    discriminator: str


@dataclass(frozen=True)
class Aggregation:
    """Child rows reached through a link table and grouped per parent.

    Child columns are selected as `<prefix><column>` so they never collide with
    the parent's own columns.
    """

    link_table: str
    link_parent: str
    link_child: str
    child_table: str
    child_key: str
    child_columns: Tuple[str, ...]
    discriminator: str
    channels: Tuple[AggregationChannel, ...]
    prefix: str = "child_"


@dataclass(frozen=True)
class QuerySpec:
    table: str
    primary_key: str
    whitelist: Mapping[str, str]
    default_order_key: str
    alias: str = "p"
    type_filter: Optional[Tuple[str, Any]] = None
    aggregation: Optional[Aggregation] = None


# Request bounds for paging; anything outside is rejected before a statement is built.
MAX_PAGE = 100_000
MAX_PAGE_SIZE = 100


def page_offset(page: int, page_size: int) -> int:
    # page/page_size are validated against the bounds above at the request boundary.
    return (int(page) - 1) * int(page_size)


def resolve_order(spec: QuerySpec, requested_order_key: Optional[str]) -> str:
    """Return the whitelisted ORDER BY fragment for the requested key.

    A missing key falls back to the QuerySpec default; an unknown key is rejected.
    """
    key = requested_order_key if requested_order_key else spec.default_order_key
    fragment = spec.whitelist.get(key)
    if fragment is None:
        raise InvalidOrderKey(key)
    return fragment


def _where(spec: QuerySpec, predicate: Optional[Predicate]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if spec.type_filter is not None:
        col, value = spec.type_filter
        clauses.append(f'{spec.alias}."{col}" = ?')
        params.append(value)
    if predicate is not None and predicate.sql:
        clauses.append(f"({predicate.sql})")
        params.extend(predicate.params)
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


def build(
    spec: QuerySpec,
    requested_order_key: Optional[str],
    page: int,
    page_size: int,
    predicate: Optional[Predicate] = None,
) -> Statement:
    """Compose the page SELECT for `spec`.

    With an aggregation the page of parents is chosen in a subquery first and
    then LEFT JOINed to the link and child tables, so join fan-out never
    changes which parents land on the page and childless parents are kept.
    """
    order_sql = resolve_order(spec, requested_order_key)
    offset = page_offset(page, page_size)
    where_sql, params = _where(spec, predicate)
    a = spec.alias
    tiebreak = f'{a}."{spec.primary_key}"'

    inner = (
        f"SELECT {a}.* FROM {spec.table} AS {a}{where_sql} "
        f"ORDER BY {order_sql}, {tiebreak} LIMIT ? OFFSET ?"
    )
    params.extend([int(page_size), offset])

    agg = spec.aggregation
    if agg is None:
        return Statement(inner, tuple(params))

    child_cols = ", ".join(f'c."{col}" AS {agg.prefix}{col}' for col in agg.child_columns)
    placeholders = ", ".join("?" for _ in agg.channels)
    sql = (
        f"SELECT {a}.*, {child_cols}\n"
        f"FROM ({inner}) AS {a}\n"
        f'LEFT JOIN {agg.link_table} AS l ON l."{agg.link_parent}" = {a}."{spec.primary_key}"\n'
        f'LEFT JOIN {agg.child_table} AS c ON c."{agg.child_key}" = l."{agg.link_child}" '
        f'AND c."{agg.discriminator}" IN ({placeholders})\n'
        f'ORDER BY {order_sql}, {tiebreak}, c."{agg.child_key}"'
    )
    params.extend(ch.discriminator for ch in agg.channels)
    return Statement(sql, tuple(params))


def build_count(spec: QuerySpec, predicate: Optional[Predicate] = None) -> Statement:
    """COUNT(*) over the same type filter and predicate, without joins or paging."""
    where_sql, params = _where(spec, predicate)
    return Statement(f"SELECT COUNT(*) AS n FROM {spec.table} AS {spec.alias}{where_sql}", tuple(params))
