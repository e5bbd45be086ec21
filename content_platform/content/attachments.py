"""Attachments: uploaded files stored as `typecho_contents` rows of type `attachment`.

The row's `text` column holds the file metadata as JSON
(`name, path, size, type, mime`). Attachments are bound to a post through the
row's `parent` column; `parent = 0` means unattached.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, BinaryIO, Dict, Optional

from content_platform.db import Store
from content_platform.errors import DatabaseFailed, InvalidParams, NotFound
from content_platform.models import AttachmentText, Identity
from content_platform.query import PagedResult, Predicate, QuerySpec, order_whitelist, paginate
from content_platform.schema import CONTENTS_TABLE
from content_platform.storage import LocalStorage, StoredFile
from content_platform.util.time import unix_now

from .common import delete_content_by_cid, get_content_by_cid, get_content_by_slug, load_owned, privacy_predicate


def _debug(msg: str) -> None:
    print(f"[attachments] {msg}")


ATTACHMENTS_SPEC = QuerySpec(
    table=CONTENTS_TABLE,
    primary_key="cid",
    whitelist=order_whitelist("p", "cid", "slug"),
    default_order_key="-cid",
    type_filter=("type", "attachment"),
)


def decode_text(raw: Optional[str]) -> AttachmentText:
    try:
        data = json.loads(raw or "")
        return AttachmentText(
            name=str(data["name"]),
            path=str(data["path"]),
            size=int(data["size"]),
            type=str(data["type"]),
            mime=str(data["mime"]),
        )
    except (ValueError, TypeError, KeyError) as e:
        raise DatabaseFailed(f"attachment_text_decode: {e}") from e


def attachment_info(row: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a row and its JSON metadata into the public shape."""
    info: Dict[str, Any] = {
        "cid": row["cid"],
        "created": row.get("created"),
        "modified": row.get("modified"),
        "parent": row.get("parent") or 0,
    }
    info.update(asdict(decode_text(row.get("text"))))
    return info


def _store_upload(
    storage: LocalStorage,
    filename: Optional[str],
    content_type: Optional[str],
    stream: Optional[BinaryIO],
) -> AttachmentText:
    if stream is None or not filename or not content_type:
        raise InvalidParams("file")
    saved: StoredFile = storage.save(filename, stream)
    return AttachmentText(
        name=filename,
        path=saved.path,
        size=saved.size,
        type=saved.ext,
        mime=content_type,
    )


def _load_attachment(store: Store, cid: int) -> Optional[Dict[str, Any]]:
    return get_content_by_cid(store, cid, type_="attachment")


def _load_own_attachment(store: Store, identity: Identity, cid: int) -> Dict[str, Any]:
    return load_owned(identity, lambda: _load_attachment(store, cid), field="cid")


def list_attachments(
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
        ATTACHMENTS_SPEC,
        order_by=order_by,
        page=page,
        page_size=page_size,
        predicate=privacy_predicate(identity, private),
        mapper=attachment_info,
    )


def create_attachment(
    store: Store,
    identity: Identity,
    storage: LocalStorage,
    *,
    filename: Optional[str],
    content_type: Optional[str],
    stream: Optional[BinaryIO],
) -> Dict[str, Any]:
    text = _store_upload(storage, filename, content_type, stream)
    now = unix_now()
    slug = text.path.rsplit("/", 1)[-1]
    try:
        cid = store.insert(
            f"""
            INSERT INTO {CONTENTS_TABLE}
                ("type", "title", "slug", "created", "modified", "text", "authorId", "status", "parent")
            VALUES ('attachment', ?, ?, ?, ?, ?, ?, 'publish', 0)
            RETURNING "cid"
            """,
            (text.name, slug, now, now, json.dumps(asdict(text)), identity.id),
            unique_field="slug",
        )
    except Exception:
        storage.delete(text.path)
        raise
    _debug(f"Created attachment cid={cid} path={text.path} by uid={identity.id}")
    row = _load_attachment(store, cid)
    assert row is not None
    return attachment_info(row)


def get_attachment(store: Store, identity: Identity, cid: int) -> Dict[str, Any]:
    return attachment_info(_load_own_attachment(store, identity, cid))


def modify_attachment(
    store: Store,
    identity: Identity,
    storage: LocalStorage,
    cid: int,
    *,
    filename: Optional[str],
    content_type: Optional[str],
    stream: Optional[BinaryIO],
) -> Dict[str, Any]:
    """Replace an attachment's file. The old file is removed once the row points at the new one."""
    row = _load_own_attachment(store, identity, cid)
    old = decode_text(row.get("text"))

    text = _store_upload(storage, filename, content_type, stream)
    try:
        store.execute(
            f'UPDATE {CONTENTS_TABLE} SET "title" = ?, "text" = ?, "modified" = ? WHERE "cid" = ?',
            (text.name, json.dumps(asdict(text)), unix_now(), int(cid)),
        )
    except Exception:
        storage.delete(text.path)
        raise
    storage.delete(old.path)

    updated = _load_attachment(store, cid)
    assert updated is not None
    return attachment_info(updated)


def delete_attachment(store: Store, identity: Identity, storage: LocalStorage, cid: int) -> None:
    row = _load_own_attachment(store, identity, cid)
    text = decode_text(row.get("text"))
    delete_content_by_cid(store, int(cid))
    storage.delete(text.path)
    _debug(f"Deleted attachment cid={cid} by uid={identity.id}")


def list_content_attachments(
    store: Store,
    slug: str,
    *,
    order_by: Optional[str],
    page: int,
    page_size: int,
) -> PagedResult:
    """Attachments bound to a published post or page, oldest first by default."""
    content = get_content_by_slug(store, slug)
    if content is None or content.get("type") == "attachment" or content.get("status") != "publish":
        raise NotFound("slug")
    return paginate(
        store,
        ATTACHMENTS_SPEC,
        order_by=order_by or "cid",
        page=page,
        page_size=page_size,
        predicate=Predicate('p."parent" = ?', (int(content["cid"]),)),
        mapper=attachment_info,
    )


def _load_own_content(store: Store, identity: Identity, slug: str) -> Dict[str, Any]:
    def loader() -> Optional[Dict[str, Any]]:
        row = get_content_by_slug(store, slug)
        if row is not None and row.get("type") == "attachment":
            return None
        return row

    return load_owned(identity, loader, field="slug")


def attach_to_content(store: Store, identity: Identity, slug: str, cid: int) -> Dict[str, Any]:
    """Bind an attachment the actor owns to a post the actor owns."""
    content = _load_own_content(store, identity, slug)
    _load_own_attachment(store, identity, cid)
    store.execute(
        f'UPDATE {CONTENTS_TABLE} SET "parent" = ? WHERE "cid" = ?',
        (int(content["cid"]), int(cid)),
    )
    row = _load_attachment(store, cid)
    assert row is not None
    return attachment_info(row)


def detach_from_content(store: Store, identity: Identity, slug: str, cid: int) -> None:
    content = _load_own_content(store, identity, slug)
    attachment = _load_own_attachment(store, identity, cid)
    if int(attachment.get("parent") or 0) != int(content["cid"]):
        raise InvalidParams("cid")
    store.execute(
        f'UPDATE {CONTENTS_TABLE} SET "parent" = 0 WHERE "cid" = ?',
        (int(cid),),
    )
