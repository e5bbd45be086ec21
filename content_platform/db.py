from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple
from urllib.parse import urlparse

from content_platform.errors import AlreadyExists, DatabaseFailed
from content_platform.schema import get_schema_sql


def _debug(msg: str) -> None:
    print(f"[db] {msg}")


def _detect_dialect(dsn: str) -> str:
    """Return 'postgres' or 'sqlite'."""
    s = (dsn or "").strip()
    if not s:
        return "sqlite"
    try:
        scheme = urlparse(s).scheme.lower()
    except ValueError:
        scheme = ""
    if scheme in ("postgres", "postgresql"):
        return "postgres"
    return "sqlite"


def _qmark_to_pct(sql: str) -> str:
    """Convert SQLite qmark placeholders (?) to psycopg2 placeholders (%s).

    This is a lightweight conversion that avoids replacing '?' inside single/double-quoted
    string literals. It's not a full SQL parser, but it is sufficient for this codebase.
    Literal '%' is doubled so psycopg2 does not treat it as a placeholder.
    """
    out: List[str] = []
    in_single = False
    in_double = False
    i = 0
    while i < len(sql):
        ch = sql[i]

        if ch == "'" and not in_double:
            out.append(ch)
            if in_single:
                # Escaped single quote: ''
                if i + 1 < len(sql) and sql[i + 1] == "'":
                    out.append("'")
                    i += 2
                    continue
                in_single = False
            else:
                in_single = True
            i += 1
            continue

        if ch == '"' and not in_single:
            out.append(ch)
            if in_double:
                # Escaped double quote: ""
                if i + 1 < len(sql) and sql[i + 1] == '"':
                    out.append('"')
                    i += 2
                    continue
                in_double = False
            else:
                in_double = True
            i += 1
            continue

        if ch == "?" and not in_single and not in_double:
            out.append("%s")
            i += 1
            continue

        if ch == "%":
            out.append("%%")
            i += 1
            continue

        out.append(ch)
        i += 1

    return "".join(out)


class PGCursor:
    def __init__(self, cur: Any):
        self._cur = cur

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> "PGCursor":
        self._cur.execute(_qmark_to_pct(sql), tuple(params or ()))
        return self

    def fetchone(self) -> Any:
        return self._cur.fetchone()

    def fetchall(self) -> Any:
        return self._cur.fetchall()

    @property
    def rowcount(self) -> int:
        return int(self._cur.rowcount or 0)

    @property
    def lastrowid(self) -> Optional[int]:
        # psycopg2 reports an OID here, which is meaningless for BIGSERIAL keys.
        return None

    def close(self) -> None:
        self._cur.close()


class PGConnection:
    """A tiny adapter that makes psycopg2 connections look like sqlite3 connections."""

    dialect = "postgres"

    def __init__(self, conn: Any):
        self._conn = conn

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> PGCursor:
        wrapper = PGCursor(self._conn.cursor())
        wrapper.execute(sql, params)
        return wrapper

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


@contextmanager
def connect(db_dsn: str) -> Iterator[Any]:
    """Connect to SQLite or Postgres with sensible defaults.

    - SQLite: uses WAL + NORMAL sync.
    - Postgres: uses psycopg2 (RealDictCursor) so rows behave like dicts.

    The connection commits when the block exits cleanly and rolls back otherwise.
    """
    dsn = (db_dsn or "").strip()
    dialect = _detect_dialect(dsn)

    if dialect == "postgres":
        import psycopg2
        import psycopg2.extras

        # RealDictCursor makes fetchone()/fetchall() rows act like dicts.
        raw = psycopg2.connect(dsn, cursor_factory=psycopg2.extras.RealDictCursor)
        conn = PGConnection(raw)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return

    # Support sqlite:///path style
    if dsn.lower().startswith("sqlite:///"):
        dsn = dsn[len("sqlite:///") :]

    Path(dsn).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(dsn, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # Concurrency / performance pragmas (safe defaults for multi-process API workers)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=5000;")  # 5s
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db(db_dsn: str, *, users_table: str = "typecho_users") -> None:
    """Create all tables (idempotent)."""
    dialect = _detect_dialect(db_dsn)
    _debug(f"Initializing DB ({dialect}) at {db_dsn}")
    with connect(db_dsn) as conn:
        ddl = get_schema_sql(dialect, users_table=users_table)
        if dialect == "postgres":
            # Execute multi-statement DDL (naive split is OK for our schema)
            for stmt in [s.strip() for s in ddl.split(";") if s.strip()]:
                conn.execute(stmt)
            return
        # SQLite can run it in one go
        conn.executescript(ddl)


# -----------------------------
# Store
# -----------------------------


class ExecResult(NamedTuple):
    rows_affected: int
    last_insert_id: Optional[int]


def _driver_errors(dialect: str) -> Tuple[Tuple[type, ...], Tuple[type, ...]]:
    """(integrity errors, all driver errors) for the connection's dialect."""
    if dialect == "postgres":
        import psycopg2

        return (psycopg2.IntegrityError,), (psycopg2.Error, OverflowError)
    # OverflowError: a bound integer the driver cannot represent.
    return (sqlite3.IntegrityError,), (sqlite3.Error, OverflowError)


def _row_dict(row: Any) -> Dict[str, Any]:
    return dict(row)


class Store:
    """Statement runner over one open connection.

    Every statement uses positional `?` parameters. Driver failures surface once
    as DatabaseFailed; integrity failures on a statement that names a
    `unique_field` surface as AlreadyExists(unique_field). Nothing is retried.
    """

    def __init__(self, conn: Any, *, users_table: str = "typecho_users"):
        self.conn = conn
        self.users_table = users_table
        self.dialect = str(getattr(conn, "dialect", "sqlite") or "sqlite").lower()
        self._integrity_errors, self._driver_errors = _driver_errors(self.dialect)

    def _run(self, sql: str, params: Sequence[Any], unique_field: Optional[str]) -> Any:
        try:
            return self.conn.execute(sql, tuple(params))
        except self._integrity_errors as e:
            if unique_field is not None:
                _debug(f"Integrity violation on {unique_field}: {e}")
                raise AlreadyExists(unique_field) from e
            _debug(f"Integrity violation: {e}")
            raise DatabaseFailed(str(e)) from e
        except self._driver_errors as e:
            _debug(f"Statement failed: {e}")
            raise DatabaseFailed(str(e)) from e

    def execute(
        self,
        sql: str,
        params: Sequence[Any] = (),
        *,
        unique_field: Optional[str] = None,
    ) -> ExecResult:
        cur = self._run(sql, params, unique_field)
        return ExecResult(rows_affected=int(cur.rowcount or 0), last_insert_id=cur.lastrowid)

    def insert(self, sql: str, params: Sequence[Any] = (), *, unique_field: Optional[str] = None) -> int:
        """Run an INSERT ... RETURNING <pk> and return the new key."""
        # Drain the cursor so the statement is finished before commit.
        rows = self._run(sql, params, unique_field).fetchall()
        if not rows:
            raise DatabaseFailed("insert_returned_nothing")
        return int(next(iter(_row_dict(rows[0]).values())))

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        return [_row_dict(r) for r in self._run(sql, params, None).fetchall()]

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        row = self._run(sql, params, None).fetchone()
        if row is None:
            return None
        return _row_dict(row)

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        row = self.fetch_one(sql, params)
        if row is None:
            return None
        return next(iter(row.values()))


@contextmanager
def open_store(db_dsn: str, *, users_table: str = "typecho_users") -> Iterator[Store]:
    with connect(db_dsn) as conn:
        yield Store(conn, users_table=users_table)
