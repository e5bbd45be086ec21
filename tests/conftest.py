from __future__ import annotations

from typing import Any, Dict, Iterator, List, NamedTuple, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient

from content_platform.api.server import create_app
from content_platform.auth.crud import create_user
from content_platform.auth.security import create_access_token
from content_platform.config import Config
from content_platform.db import ExecResult, init_db, open_store
from content_platform.models import Role

SECRET = "test-secret"


class Account(NamedTuple):
    uid: int
    name: str
    password: str
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


class RecordingStore:
    """Store stand-in that records statements and answers from canned rows."""

    users_table = "typecho_users"
    dialect = "sqlite"

    def __init__(self, rows: Sequence[Dict[str, Any]] = (), count: int = 0) -> None:
        self.rows = list(rows)
        self.count = count
        self.statements: List[Tuple[str, Tuple[Any, ...]]] = []

    def _record(self, sql: str, params: Sequence[Any]) -> None:
        self.statements.append((sql, tuple(params)))

    def execute(self, sql: str, params: Sequence[Any] = (), *, unique_field: Any = None) -> ExecResult:
        self._record(sql, params)
        return ExecResult(rows_affected=0, last_insert_id=None)

    def insert(self, sql: str, params: Sequence[Any] = (), *, unique_field: Any = None) -> int:
        self._record(sql, params)
        return 1

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        self._record(sql, params)
        return [dict(r) for r in self.rows]

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Any:
        self._record(sql, params)
        return dict(self.rows[0]) if self.rows else None

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        self._record(sql, params)
        return self.count


def make_config(tmp_path, **overrides: Any) -> Config:
    values: Dict[str, Any] = dict(
        DB_DSN=str(tmp_path / "cms.sqlite"),
        USERS_TABLE="typecho_users",
        UPLOAD_ROOT=str(tmp_path / "site"),
        READ_ONLY=False,
        ALLOW_REGISTER=True,
        AUTH_JWT_SECRET=SECRET,
        AUTH_TOKEN_EXPIRE_MINUTES=60,
        AUTH_BOOTSTRAP_ADMIN_USERNAME="admin",
        AUTH_BOOTSTRAP_ADMIN_PASSWORD="admin-pass",
        AUTH_BOOTSTRAP_ADMIN_MAIL="admin@example.com",
        CORS_ALLOW_ORIGINS="",
    )
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def cfg(tmp_path) -> Config:
    return make_config(tmp_path)


@pytest.fixture
def store(cfg):
    init_db(cfg.DB_DSN, users_table=cfg.USERS_TABLE)
    with open_store(cfg.DB_DSN, users_table=cfg.USERS_TABLE) as s:
        yield s


@pytest.fixture
def client(cfg) -> Iterator[TestClient]:
    with TestClient(create_app(cfg)) as c:
        yield c


def add_account(cfg: Config, name: str, role: Role) -> Account:
    password = f"pw-{name}"
    with open_store(cfg.DB_DSN, users_table=cfg.USERS_TABLE) as s:
        uid = create_user(s, name=name, mail=f"{name}@example.com", password=password, role=role)
    token = create_access_token(secret=cfg.AUTH_JWT_SECRET, user_id=uid, expires_minutes=60)
    return Account(uid=uid, name=name, password=password, token=token)


@pytest.fixture
def accounts(client, cfg) -> Dict[str, Account]:
    """One account per tier, plus a second contributor."""
    return {
        "subscriber": add_account(cfg, "sam", Role.SUBSCRIBER),
        "contributor": add_account(cfg, "carol", Role.CONTRIBUTOR),
        "contributor2": add_account(cfg, "chris", Role.CONTRIBUTOR),
        "editor": add_account(cfg, "eve", Role.EDITOR),
        "administrator": add_account(cfg, "ada", Role.ADMINISTRATOR),
    }


def new_post(client: TestClient, account: Account, slug: str, **fields: Any) -> int:
    body = {"title": slug.title(), "slug": slug, "text": f"body of {slug}"}
    body.update(fields)
    r = client.post("/api/posts/", json=body, headers=account.headers)
    assert r.status_code == 201, r.text
    return r.json()["id"]
