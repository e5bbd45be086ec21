from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from content_platform.auth.roles import has_tier
from content_platform.db import Store
from content_platform.errors import AlreadyExists, InvalidParams, NotFound
from content_platform.models import Identity, Role
from content_platform.query import (
    Aggregation,
    AggregationChannel,
    PagedResult,
    Predicate,
    QuerySpec,
    fetch_one,
    order_whitelist,
    paginate,
)
from content_platform.schema import CONTENTS_TABLE, METAS_TABLE, RELATIONSHIPS_TABLE
from content_platform.util.time import unix_now

from .common import delete_content_by_cid, get_content_by_slug, load_owned, slug_exists


def _debug(msg: str) -> None:
    print(f"[posts] {msg}")


META_COLUMNS = ("mid", "name", "slug", "type", "description", "count", "order", "parent")

META_AGGREGATION = Aggregation(
    link_table=RELATIONSHIPS_TABLE,
    link_parent="cid",
    link_child="mid",
    child_table=METAS_TABLE,
    child_key="mid",
    child_columns=META_COLUMNS,
    discriminator="type",
    channels=(
        AggregationChannel(name="categories", discriminator="category"),
        AggregationChannel(name="tags", discriminator="tag"),
    ),
)

POSTS_SPEC = QuerySpec(
    table=CONTENTS_TABLE,
    primary_key="cid",
    whitelist=order_whitelist("p", "cid", "slug", "created", "modified"),
    default_order_key="-cid",
    type_filter=("type", "post"),
    aggregation=META_AGGREGATION,
)

PUBLISHED = Predicate('p."status" = ?', ("publish",))


def visible_to(identity: Optional[Identity]) -> Optional[Predicate]:
    """Published posts for everyone; unpublished ones for their author and editors."""
    if identity is None:
        return PUBLISHED
    if has_tier(identity, Role.EDITOR):
        return None
    return Predicate('p."status" = ? OR p."authorId" = ?', ("publish", identity.id))


# Columns a client may set on create/modify. Values are always bound.
POST_COLUMNS = (
    "title",
    "slug",
    "created",
    "text",
    "template",
    "status",
    "password",
    "allowComment",
    "allowPing",
    "allowFeed",
)


def public_post(row: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password", None)
    return d


def list_posts(
    store: Store,
    *,
    order_by: Optional[str],
    page: int,
    page_size: int,
    with_meta: bool = False,
    identity: Optional[Identity] = None,
) -> PagedResult:
    return paginate(
        store,
        POSTS_SPEC,
        order_by=order_by,
        page=page,
        page_size=page_size,
        predicate=visible_to(identity),
        aggregate=with_meta,
        mapper=public_post,
    )


def get_post(
    store: Store, slug: str, *, with_meta: bool = False, identity: Optional[Identity] = None
) -> Dict[str, Any]:
    pred = Predicate.all_of(visible_to(identity), Predicate('p."slug" = ?', (slug,)))
    assert pred is not None
    row = fetch_one(store, POSTS_SPEC, pred, aggregate=with_meta)
    if row is None:
        raise NotFound("slug")
    return public_post(row)


def _load_own_post(store: Store, identity: Identity, slug: str) -> Dict[str, Any]:
    return load_owned(
        identity,
        lambda: get_content_by_slug(store, slug, type_="post"),
        field="slug",
    )


def create_post(store: Store, identity: Identity, values: Mapping[str, Any]) -> int:
    """Insert a post owned by `identity`.

    A taken slug is rejected before anything is written.
    """
    slug = str(values.get("slug") or "").strip()
    if not slug:
        raise InvalidParams("slug")
    if slug_exists(store, slug):
        raise AlreadyExists("slug")

    now = unix_now()
    cols = [c for c in POST_COLUMNS if c in values and values[c] is not None]
    row = {c: values[c] for c in cols}
    row["slug"] = slug
    row.setdefault("created", now)
    row["modified"] = now
    row["authorId"] = identity.id
    row["type"] = "post"

    names = ", ".join(f'"{c}"' for c in row)
    marks = ", ".join("?" for _ in row)
    cid = store.insert(
        f'INSERT INTO {CONTENTS_TABLE} ({names}) VALUES ({marks}) RETURNING "cid"',
        list(row.values()),
        unique_field="slug",
    )
    _debug(f"Created post cid={cid} slug={slug} by uid={identity.id}")
    return cid


def modify_post(store: Store, identity: Identity, slug: str, values: Mapping[str, Any]) -> Dict[str, Any]:
    post = _load_own_post(store, identity, slug)

    updates = {c: values[c] for c in POST_COLUMNS if c in values and values[c] is not None}
    new_slug = updates.get("slug")
    if new_slug is not None:
        new_slug = str(new_slug).strip()
        if not new_slug:
            raise InvalidParams("slug")
        if slug_exists(store, new_slug, exclude_cid=int(post["cid"])):
            raise AlreadyExists("slug")
        updates["slug"] = new_slug
    updates["modified"] = unix_now()

    sets = ", ".join(f'"{c}" = ?' for c in updates)
    store.execute(
        f'UPDATE {CONTENTS_TABLE} SET {sets} WHERE "cid" = ?',
        list(updates.values()) + [int(post["cid"])],
        unique_field="slug",
    )
    row = get_content_by_slug(store, updates.get("slug", slug), type_="post")
    assert row is not None
    return public_post(row)


def delete_post(store: Store, identity: Identity, slug: str) -> None:
    post = _load_own_post(store, identity, slug)
    delete_content_by_cid(store, int(post["cid"]))
    _debug(f"Deleted post cid={post['cid']} by uid={identity.id}")


def link_meta(store: Store, identity: Identity, slug: str, mid: int) -> None:
    """Attach a category or tag to a post the actor owns."""
    post = _load_own_post(store, identity, slug)
    meta = store.fetch_one(f'SELECT "mid" FROM {METAS_TABLE} WHERE "mid" = ?', (int(mid),))
    if meta is None:
        raise NotFound("mid")

    linked = store.fetch_one(
        f'SELECT 1 FROM {RELATIONSHIPS_TABLE} WHERE "cid" = ? AND "mid" = ?',
        (int(post["cid"]), int(mid)),
    )
    if linked is not None:
        raise AlreadyExists("mid")
    store.execute(
        f'INSERT INTO {RELATIONSHIPS_TABLE} ("cid", "mid") VALUES (?, ?)',
        (int(post["cid"]), int(mid)),
        unique_field="mid",
    )
    store.execute(f'UPDATE {METAS_TABLE} SET "count" = "count" + 1 WHERE "mid" = ?', (int(mid),))
