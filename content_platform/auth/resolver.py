"""Credential resolver: bearer token -> Identity.

The routing layer only extracts the raw credential string; every authenticated
operation calls `resolve_and_require` first and threads the returned Identity
through explicitly.
"""

from __future__ import annotations

from typing import Optional

import jwt

from content_platform.db import Store
from content_platform.errors import Unauthenticated, UserNotFound
from content_platform.models import Identity, Role

from .crud import get_user_by_id
from .roles import require
from .security import decode_access_token


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def _unauthenticated(reason: str) -> Unauthenticated:
    _debug(f"Rejected credential: {reason}")
    return Unauthenticated(reason)


def resolve(store: Store, raw_token: Optional[str], *, secret: str) -> Identity:
    """Verify `raw_token` and load its subject from the users table.

    Raises Unauthenticated for a missing/invalid/expired token and
    UserNotFound when the subject no longer exists.
    """
    token = (raw_token or "").strip()
    if not token:
        raise _unauthenticated("missing_token")

    try:
        payload = decode_access_token(token=token, secret=secret)
    except jwt.ExpiredSignatureError:
        raise _unauthenticated("token_expired")
    except jwt.InvalidTokenError:
        raise _unauthenticated("token_invalid")

    sub = payload.get("sub")
    if not sub:
        raise _unauthenticated("token_missing_sub")

    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise _unauthenticated("token_sub_not_int")

    row = get_user_by_id(store, user_id)
    if row is None:
        _debug(f"Token subject {user_id} no longer exists")
        raise UserNotFound("uid")
    return Identity.from_row(row)


def resolve_and_require(store: Store, raw_token: Optional[str], minimum: Role, *, secret: str) -> Identity:
    return require(resolve(store, raw_token, secret=secret), minimum)
