from __future__ import annotations

from typing import Any, Dict, Optional

from content_platform.db import Store
from content_platform.errors import AlreadyExists, InvalidParams
from content_platform.models import Identity
from content_platform.query import PagedResult, Predicate, QuerySpec, order_whitelist, paginate
from content_platform.schema import METAS_TABLE


def _debug(msg: str) -> None:
    print(f"[metas] {msg}")


META_TYPES = ("category", "tag")

METAS_SPEC = QuerySpec(
    table=METAS_TABLE,
    primary_key="mid",
    whitelist=order_whitelist("p", "mid", "slug", "name", "order"),
    default_order_key="mid",
)


def _check_type(meta_type: Optional[str]) -> Optional[str]:
    if meta_type is None:
        return None
    t = meta_type.strip().lower()
    if t not in META_TYPES:
        raise InvalidParams("type")
    return t


def list_metas(
    store: Store,
    *,
    meta_type: Optional[str],
    order_by: Optional[str],
    page: int,
    page_size: int,
) -> PagedResult:
    t = _check_type(meta_type)
    pred = Predicate('p."type" = ?', (t,)) if t else None
    return paginate(store, METAS_SPEC, order_by=order_by, page=page, page_size=page_size, predicate=pred)


def get_meta(store: Store, mid: int) -> Optional[Dict[str, Any]]:
    return store.fetch_one(f'SELECT * FROM {METAS_TABLE} WHERE "mid" = ?', (int(mid),))


def create_meta(
    store: Store,
    identity: Identity,
    *,
    name: str,
    slug: str,
    meta_type: str,
    description: Optional[str] = None,
    parent: int = 0,
) -> Dict[str, Any]:
    t = _check_type(meta_type)
    name = (name or "").strip()
    slug = (slug or "").strip()
    if not name:
        raise InvalidParams("name")
    if not slug:
        raise InvalidParams("slug")

    taken = store.fetch_one(
        f'SELECT 1 FROM {METAS_TABLE} WHERE "type" = ? AND "slug" = ?',
        (t, slug),
    )
    if taken is not None:
        raise AlreadyExists("slug")

    mid = store.insert(
        f"""
        INSERT INTO {METAS_TABLE} ("name", "slug", "type", "description", "count", "order", "parent")
        VALUES (?, ?, ?, ?, 0, 0, ?)
        RETURNING "mid"
        """,
        (name, slug, t, description, int(parent or 0)),
        unique_field="slug",
    )
    _debug(f"Created {t} mid={mid} slug={slug} by uid={identity.id}")
    row = get_meta(store, mid)
    assert row is not None
    return row
