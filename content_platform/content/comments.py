from __future__ import annotations

from typing import Any, Dict, Optional

from content_platform.auth.roles import has_tier
from content_platform.db import Store
from content_platform.errors import InvalidParams, NotFound, PermissionDenied
from content_platform.models import Identity, Role
from content_platform.query import PagedResult, Predicate, QuerySpec, order_whitelist, paginate
from content_platform.schema import COMMENTS_TABLE
from content_platform.util.time import unix_now

from .common import get_content_by_slug, load_owned, privacy_predicate


def _debug(msg: str) -> None:
    print(f"[comments] {msg}")


COMMENTS_SPEC = QuerySpec(
    table=COMMENTS_TABLE,
    primary_key="coid",
    whitelist=order_whitelist("p", "coid", "created"),
    default_order_key="-coid",
    type_filter=("type", "comment"),
)

APPROVED = Predicate('p."status" = ?', ("approved",))


def get_comment(store: Store, coid: int) -> Optional[Dict[str, Any]]:
    return store.fetch_one(f'SELECT * FROM {COMMENTS_TABLE} WHERE "coid" = ?', (int(coid),))


def list_comments(
    store: Store,
    identity: Identity,
    *,
    private: Optional[bool],
    order_by: Optional[str],
    page: int,
    page_size: int,
) -> PagedResult:
    return paginate(
        store,
        COMMENTS_SPEC,
        order_by=order_by,
        page=page,
        page_size=page_size,
        predicate=privacy_predicate(identity, private),
    )


def _commentable(store: Store, slug: str) -> Dict[str, Any]:
    content = get_content_by_slug(store, slug)
    if content is None or content.get("type") == "attachment" or content.get("status") != "publish":
        raise NotFound("slug")
    return content


def list_content_comments(
    store: Store,
    slug: str,
    *,
    order_by: Optional[str],
    page: int,
    page_size: int,
) -> PagedResult:
    content = _commentable(store, slug)
    pred = Predicate.all_of(APPROVED, Predicate('p."cid" = ?', (int(content["cid"]),)))
    return paginate(
        store,
        COMMENTS_SPEC,
        order_by=order_by or "coid",
        page=page,
        page_size=page_size,
        predicate=pred,
    )


def create_comment(
    store: Store,
    identity: Identity,
    slug: str,
    *,
    text: str,
    parent: int = 0,
    ip: Optional[str] = None,
    agent: Optional[str] = None,
) -> Dict[str, Any]:
    """Comment on a published post.

    Comments from the post's owner or from editors are approved immediately;
    everyone else waits for moderation.
    """
    content = _commentable(store, slug)
    if str(content.get("allowComment") or "") != "1":
        raise PermissionDenied()

    body = (text or "").strip()
    if not body:
        raise InvalidParams("text")

    cid = int(content["cid"])
    if parent:
        p = get_comment(store, parent)
        if p is None or int(p["cid"]) != cid:
            raise InvalidParams("parent")

    owner_id = int(content.get("authorId") or 0)
    approved = identity.id == owner_id or has_tier(identity, Role.EDITOR)
    status = "approved" if approved else "waiting"

    coid = store.insert(
        f"""
        INSERT INTO {COMMENTS_TABLE}
            ("cid", "created", "author", "authorId", "ownerId", "mail", "url", "ip", "agent", "text", "type", "status", "parent")
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'comment', ?, ?)
        RETURNING "coid"
        """,
        (
            cid,
            unix_now(),
            identity.screen_name or identity.name,
            identity.id,
            owner_id,
            identity.mail,
            identity.url,
            ip,
            agent,
            body,
            status,
            int(parent or 0),
        ),
    )
    _debug(f"Created comment coid={coid} on cid={cid} status={status} by uid={identity.id}")
    row = get_comment(store, coid)
    assert row is not None
    return row


def delete_comment(store: Store, identity: Identity, coid: int) -> None:
    load_owned(identity, lambda: get_comment(store, coid), field="coid")
    store.execute(f'DELETE FROM {COMMENTS_TABLE} WHERE "coid" = ?', (int(coid),))
