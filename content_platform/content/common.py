"""Shared helpers for rows in `typecho_contents` and per-object authorization."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from content_platform.auth.roles import authorize_on, has_tier
from content_platform.db import Store
from content_platform.errors import NotFound, PermissionDenied
from content_platform.models import Identity, Role
from content_platform.query import Predicate
from content_platform.schema import CONTENTS_TABLE, METAS_TABLE, RELATIONSHIPS_TABLE


def get_content_by_cid(store: Store, cid: int, *, type_: Optional[str] = None) -> Optional[Dict[str, Any]]:
    sql = f'SELECT * FROM {CONTENTS_TABLE} WHERE "cid" = ?'
    params: list = [int(cid)]
    if type_ is not None:
        sql += ' AND "type" = ?'
        params.append(type_)
    return store.fetch_one(sql, params)


def get_content_by_slug(store: Store, slug: str, *, type_: Optional[str] = None) -> Optional[Dict[str, Any]]:
    sql = f'SELECT * FROM {CONTENTS_TABLE} WHERE "slug" = ?'
    params: list = [slug]
    if type_ is not None:
        sql += ' AND "type" = ?'
        params.append(type_)
    return store.fetch_one(sql, params)


def slug_exists(store: Store, slug: str, *, exclude_cid: Optional[int] = None) -> bool:
    sql = f'SELECT 1 FROM {CONTENTS_TABLE} WHERE "slug" = ?'
    params: list = [slug]
    if exclude_cid is not None:
        sql += ' AND "cid" <> ?'
        params.append(int(exclude_cid))
    return store.fetch_one(sql, params) is not None


def delete_content_by_cid(store: Store, cid: int) -> int:
    """Delete a content row with its meta links, keeping each meta's `count` in step."""
    store.execute(
        f'UPDATE {METAS_TABLE} SET "count" = "count" - 1 '
        f'WHERE "mid" IN (SELECT "mid" FROM {RELATIONSHIPS_TABLE} WHERE "cid" = ?)',
        (int(cid),),
    )
    store.execute(f'DELETE FROM {RELATIONSHIPS_TABLE} WHERE "cid" = ?', (int(cid),))
    return store.execute(f'DELETE FROM {CONTENTS_TABLE} WHERE "cid" = ?', (int(cid),)).rows_affected


def privacy_predicate(identity: Identity, private: Optional[bool], *, owner_col: str = "authorId") -> Optional[Predicate]:
    """Scope a listing to the actor's own rows.

    `private=True` lifts the scope for editors and administrators only; for
    everyone else the flag is ignored.
    """
    if private and has_tier(identity, Role.EDITOR):
        return None
    return Predicate(f'p."{owner_col}" = ?', (identity.id,))


def load_owned(
    identity: Identity,
    loader: Callable[[], Optional[Dict[str, Any]]],
    *,
    field: str,
    owner_col: str = "authorId",
    bypass: Role = Role.EDITOR,
) -> Dict[str, Any]:
    """Fetch a row the actor must own (or bypass).

    Below the bypass tier a missing row is reported as PermissionDenied, the
    same as someone else's row, so ids cannot be probed.
    """
    row = loader()
    if row is None:
        if has_tier(identity, bypass):
            raise NotFound(field)
        raise PermissionDenied()
    authorize_on(identity, row.get(owner_col), bypass=bypass)
    return row
