"""Database schema (Typecho layout).

Timestamps are integer unix seconds, as Typecho stores them. Column names keep
Typecho's camelCase spelling and are always double-quoted so Postgres does not
fold them to lowercase; "group" and "order" are reserved words and need the
quotes on every engine.

The users table name is configurable and substituted for `{users_table}`; the
content, meta, relationship and comment tables are fixed.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (autoincrement).
"""

from __future__ import annotations

import re

from content_platform.config import validate_identifier


CONTENTS_TABLE = "typecho_contents"
METAS_TABLE = "typecho_metas"
RELATIONSHIPS_TABLE = "typecho_relationships"
COMMENTS_TABLE = "typecho_comments"


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS {users_table} (
    "uid" INTEGER PRIMARY KEY AUTOINCREMENT,
    "name" TEXT NOT NULL UNIQUE,
    "password" TEXT,
    "mail" TEXT NOT NULL UNIQUE,
    "url" TEXT,
    "screenName" TEXT,
    "created" INTEGER NOT NULL DEFAULT 0,
    "activated" INTEGER NOT NULL DEFAULT 0,
    "logged" INTEGER NOT NULL DEFAULT 0,
    "group" TEXT NOT NULL DEFAULT 'subscriber',
    "authCode" TEXT
);

-- Posts, pages and attachments share one table, split by "type".
CREATE TABLE IF NOT EXISTS typecho_contents (
    "cid" INTEGER PRIMARY KEY AUTOINCREMENT,
    "title" TEXT,
    "slug" TEXT UNIQUE,
    "created" INTEGER NOT NULL DEFAULT 0,
    "modified" INTEGER NOT NULL DEFAULT 0,
    "text" TEXT,
    "order" INTEGER NOT NULL DEFAULT 0,
    "authorId" INTEGER NOT NULL DEFAULT 0,
    "template" TEXT,
    "type" TEXT NOT NULL DEFAULT 'post',
    "status" TEXT NOT NULL DEFAULT 'publish',
    "password" TEXT,
    "commentsNum" INTEGER NOT NULL DEFAULT 0,
    "allowComment" TEXT NOT NULL DEFAULT '1',
    "allowPing" TEXT NOT NULL DEFAULT '1',
    "allowFeed" TEXT NOT NULL DEFAULT '1',
    "parent" INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_contents_type_author ON typecho_contents ("type", "authorId");
CREATE INDEX IF NOT EXISTS idx_contents_parent ON typecho_contents ("parent");

-- Categories and tags.
CREATE TABLE IF NOT EXISTS typecho_metas (
    "mid" INTEGER PRIMARY KEY AUTOINCREMENT,
    "name" TEXT,
    "slug" TEXT,
    "type" TEXT NOT NULL,
    "description" TEXT,
    "count" INTEGER NOT NULL DEFAULT 0,
    "order" INTEGER NOT NULL DEFAULT 0,
    "parent" INTEGER NOT NULL DEFAULT 0,
    UNIQUE ("type", "slug")
);

CREATE TABLE IF NOT EXISTS typecho_relationships (
    "cid" INTEGER NOT NULL,
    "mid" INTEGER NOT NULL,
    PRIMARY KEY ("cid", "mid")
);
CREATE INDEX IF NOT EXISTS idx_relationships_mid ON typecho_relationships ("mid");

CREATE TABLE IF NOT EXISTS typecho_comments (
    "coid" INTEGER PRIMARY KEY AUTOINCREMENT,
    "cid" INTEGER NOT NULL DEFAULT 0,
    "created" INTEGER NOT NULL DEFAULT 0,
    "author" TEXT,
    "authorId" INTEGER NOT NULL DEFAULT 0,
    "ownerId" INTEGER NOT NULL DEFAULT 0,
    "mail" TEXT,
    "url" TEXT,
    "ip" TEXT,
    "agent" TEXT,
    "text" TEXT,
    "type" TEXT NOT NULL DEFAULT 'comment',
    "status" TEXT NOT NULL DEFAULT 'approved',
    "parent" INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_comments_cid ON typecho_comments ("cid", "status");
CREATE INDEX IF NOT EXISTS idx_comments_author ON typecho_comments ("authorId");
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str, *, users_table: str = "typecho_users") -> str:
    table = validate_identifier(users_table)
    d = (dialect or "").lower()
    ddl = SCHEMA_POSTGRES if d.startswith("post") else SCHEMA_SQLITE
    return ddl.replace("{users_table}", table)
