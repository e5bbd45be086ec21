import os
import re
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load a local .env file if present (missing file is fine).
load_dotenv()


_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


def _env_bool(name: str, default: Optional[bool] = None) -> Optional[bool]:
    """Parse a boolean environment variable.

    Returns:
      - True/False if the env var is set to a recognizable value
      - default if unset or unrecognized

    Accepted truthy: 1, true, yes, y, on
    Accepted falsy:  0, false, no, n, off
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in ("1", "true", "yes", "y", "on"):
        return True
    if v in ("0", "false", "no", "n", "off"):
        return False
    return default


def validate_identifier(name: str) -> str:
    """Return `name` if it is a plain SQL identifier, else raise ValueError.

    Table names are interpolated into SQL text, so they are restricted to
    letters, digits and underscores.
    """
    n = (name or "").strip()
    if not _IDENTIFIER_RE.match(n):
        raise ValueError(f"invalid_sql_identifier: {name!r}")
    return n


@dataclass(frozen=True)
class Config:
    """Runtime configuration.

    Built once at process start (see `load_config`) and passed explicitly to
    `create_app`. Provide secrets via environment variables or a .env file.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set CMS_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: CMS_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("CMS_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("CMS_DB_PATH", "./content_platform.sqlite")
    )

    # Content/meta/relationship/comment tables are fixed; the users table is not
    # (existing Typecho installs may use a different prefix for it).
    USERS_TABLE: str = os.environ.get("CMS_USERS_TABLE", "typecho_users")

    # Uploaded attachments are written below this directory.
    UPLOAD_ROOT: str = os.environ.get("CMS_UPLOAD_ROOT", "./")

    # Read-only deployments expose list/read routes only.
    READ_ONLY: bool = _env_bool("CMS_READ_ONLY", False) is True

    # Public self-service registration.
    ALLOW_REGISTER: bool = _env_bool("CMS_ALLOW_REGISTER", True) is True

    # -----------------
    # Auth (JWT)
    # -----------------
    # NOTE: In dev, this defaults to a fixed string so you can get started.
    # In production, you MUST set AUTH_JWT_SECRET to a strong random value.
    AUTH_JWT_SECRET: str = os.environ.get("AUTH_JWT_SECRET", "dev_change_me")
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "10080"))  # 7 days

    # Bootstrap first administrator if the users table is empty
    AUTH_BOOTSTRAP_ADMIN_USERNAME: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_USERNAME", "admin")
    AUTH_BOOTSTRAP_ADMIN_PASSWORD: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_PASSWORD", "admin")
    AUTH_BOOTSTRAP_ADMIN_MAIL: str = os.environ.get("AUTH_BOOTSTRAP_ADMIN_MAIL", "admin@localhost")

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
    )

    def __post_init__(self) -> None:
        validate_identifier(self.USERS_TABLE)


def load_config() -> Config:
    return Config()
