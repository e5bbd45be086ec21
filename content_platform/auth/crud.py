from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from content_platform.config import Config
from content_platform.db import Store, open_store
from content_platform.errors import AlreadyExists, InvalidParams, NotFound, WrongCredentials
from content_platform.models import Identity, Role
from content_platform.query import PagedResult, QuerySpec, order_whitelist, paginate
from content_platform.util.time import unix_now

from .roles import authorize_on, check_role_change, parse_role
from .security import hash_password, verify_password


def _debug(msg: str) -> None:
    print(f"[users] {msg}")


def users_spec(users_table: str) -> QuerySpec:
    return QuerySpec(
        table=users_table,
        primary_key="uid",
        whitelist=order_whitelist("p", "uid", "name", "mail"),
        default_order_key="-uid",
    )


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d.pop("password", None)
    d.pop("authCode", None)
    return d


def get_user_by_id(store: Store, uid: int) -> Optional[Dict[str, Any]]:
    return store.fetch_one(
        f'SELECT * FROM {store.users_table} WHERE "uid" = ?',
        (int(uid),),
    )


def get_user_by_login(store: Store, login: str) -> Optional[Dict[str, Any]]:
    """Look a user up by name or mail."""
    v = (login or "").strip()
    if not v:
        return None
    return store.fetch_one(
        f'SELECT * FROM {store.users_table} WHERE "name" = ? OR "mail" = ?',
        (v, v),
    )


def verify_user_credentials(store: Store, login: str, password: str) -> Dict[str, Any]:
    row = get_user_by_login(store, login)
    if row is None or not verify_password(password, str(row.get("password") or "")):
        raise WrongCredentials()
    return row


def touch_last_login(store: Store, uid: int) -> None:
    now = unix_now()
    store.execute(
        f'UPDATE {store.users_table} SET "activated" = ?, "logged" = ? WHERE "uid" = ?',
        (now, now, int(uid)),
    )


def _require_filled(**values: Optional[str]) -> None:
    for field, value in values.items():
        if not (value or "").strip():
            raise InvalidParams(field)


def _ensure_unique(store: Store, *, name: str, mail: str, exclude_uid: Optional[int] = None) -> None:
    """Reject a name/mail already held by another user, naming the field."""
    for col, value in (("name", name), ("mail", mail)):
        sql = f'SELECT 1 FROM {store.users_table} WHERE "{col}" = ?'
        params: List[Any] = [value]
        if exclude_uid is not None:
            sql += ' AND "uid" <> ?'
            params.append(int(exclude_uid))
        if store.fetch_one(sql, params) is not None:
            raise AlreadyExists(col)


def create_user(
    store: Store,
    *,
    name: str,
    mail: str,
    password: str,
    url: Optional[str] = None,
    screen_name: Optional[str] = None,
    role: Role = Role.SUBSCRIBER,
) -> int:
    name = (name or "").strip()
    mail = (mail or "").strip()
    _require_filled(name=name, mail=mail, password=password)
    _ensure_unique(store, name=name, mail=mail)

    uid = store.insert(
        f"""
        INSERT INTO {store.users_table} ("name", "mail", "url", "screenName", "password", "created", "group")
        VALUES (?, ?, ?, ?, ?, ?, ?)
        RETURNING "uid"
        """,
        (name, mail, url, screen_name or name, hash_password(password), unix_now(), role.group),
        unique_field="name",
    )
    _debug(f"Created user uid={uid} name={name} group={role.group}")
    return uid


def list_users(
    store: Store,
    *,
    order_by: Optional[str],
    page: int,
    page_size: int,
) -> PagedResult:
    return paginate(
        store,
        users_spec(store.users_table),
        order_by=order_by,
        page=page,
        page_size=page_size,
        mapper=public_user,
    )


def get_user(store: Store, identity: Identity, uid: int) -> Dict[str, Any]:
    """A user's own record, or any record for administrators."""
    authorize_on(identity, uid, bypass=Role.ADMINISTRATOR)
    row = get_user_by_id(store, uid)
    if row is None:
        raise NotFound("uid")
    return public_user(row)


def modify_user(
    store: Store,
    identity: Identity,
    uid: int,
    *,
    name: str,
    mail: str,
    url: Optional[str],
    screen_name: Optional[str],
    group: str,
    password: Optional[str] = None,
) -> Dict[str, Any]:
    """Update a profile (and optionally the password) in one statement.

    Non-administrators may only edit themselves and may not change their group.
    """
    authorize_on(identity, uid, bypass=Role.ADMINISTRATOR)
    requested = parse_role(group)

    target = get_user_by_id(store, uid)
    if target is None:
        raise NotFound("uid")
    check_role_change(identity, Role.from_group(target.get("group")), requested)

    name = (name or "").strip()
    mail = (mail or "").strip()
    _require_filled(name=name, mail=mail)
    _ensure_unique(store, name=name, mail=mail, exclude_uid=uid)

    fields: List[Tuple[str, Any]] = [
        ("name", name),
        ("mail", mail),
        ("url", url),
        ("screenName", screen_name or name),
        ("group", requested.group),
    ]
    if password:
        fields.append(("password", hash_password(password)))

    sets = ", ".join(f'"{k}" = ?' for k, _ in fields)
    params = [v for _, v in fields] + [int(uid)]
    store.execute(
        f'UPDATE {store.users_table} SET {sets} WHERE "uid" = ?',
        params,
        unique_field="name",
    )
    if requested != Role.from_group(target.get("group")):
        _debug(f"uid={uid} group {target.get('group')} -> {requested.group} by uid={identity.id}")

    row = get_user_by_id(store, uid)
    assert row is not None
    return public_user(row)


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first administrator if the users table is empty.

    Controlled via environment variables so a new install has a deterministic way to log in.

    - AUTH_BOOTSTRAP_ADMIN_USERNAME (default: admin)
    - AUTH_BOOTSTRAP_ADMIN_PASSWORD (default: admin)
    - AUTH_BOOTSTRAP_ADMIN_MAIL (default: admin@localhost)
    """

    with open_store(cfg.DB_DSN, users_table=cfg.USERS_TABLE) as store:
        n = store.scalar(f"SELECT COUNT(*) AS n FROM {store.users_table}")
        if int(n or 0) > 0:
            return None

        name = (cfg.AUTH_BOOTSTRAP_ADMIN_USERNAME or "").strip()
        password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD or ""

        # If env explicitly clears these, don't create anything.
        if not name or not password:
            return None

        uid = create_user(
            store,
            name=name,
            mail=cfg.AUTH_BOOTSTRAP_ADMIN_MAIL,
            password=password,
            role=Role.ADMINISTRATOR,
        )
        row = get_user_by_id(store, uid)
        assert row is not None
        return public_user(row)
