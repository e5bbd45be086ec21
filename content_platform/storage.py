"""Local filesystem storage for uploaded attachments."""

from __future__ import annotations

import os
import re
import secrets
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, NamedTuple, Optional

from content_platform.errors import InvalidParams
from content_platform.util.time import upload_subdir


def _debug(msg: str) -> None:
    print(f"[storage] {msg}")


_EXT_RE = re.compile(r"^[A-Za-z0-9]+(\.[A-Za-z0-9]+)*$")


class StoredFile(NamedTuple):
    path: str  # public path, e.g. /usr/uploads/2024/5/1234567890.png
    ext: str
    size: int


def file_extension(filename: Optional[str]) -> str:
    """Everything after the first dot of an upload's file name.

    Names without a dot, or whose extension is not plain alphanumerics, are
    rejected as InvalidParams("file").
    """
    name = Path(filename or "").name
    dot = name.find(".")
    if dot < 0:
        raise InvalidParams("file")
    ext = name[dot + 1 :]
    if not _EXT_RE.match(ext):
        raise InvalidParams("file")
    return ext


def random_name(ext: str) -> str:
    return f"{1_000_000_000 + secrets.randbelow(9_000_000_000)}.{ext}"


class LocalStorage:
    def __init__(self, root: str) -> None:
        self.root = Path(root or "./")

    def _resolve(self, public_path: str) -> Path:
        """Map a stored `/usr/uploads/...` path below the root, refusing traversal."""
        rel = (public_path or "").lstrip("/")
        target = (self.root / rel).resolve()
        if not rel or not target.is_relative_to(self.root.resolve()):
            raise ValueError(f"Invalid upload path: {public_path}")
        return target

    def save(self, filename: Optional[str], stream: BinaryIO, *, now: Optional[datetime] = None) -> StoredFile:
        ext = file_extension(filename)
        subdir = upload_subdir(now or datetime.now())
        name = random_name(ext)

        target_dir = self.root / subdir
        target_dir.mkdir(parents=True, exist_ok=True)

        # Write to a temp file then rename so a failed upload leaves nothing behind.
        fd, tmp_path = tempfile.mkstemp(dir=target_dir)
        try:
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(stream, f)
            size = os.path.getsize(tmp_path)
            Path(tmp_path).rename(target_dir / name)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        public_path = f"/{subdir}/{name}"
        _debug(f"Saved {public_path} ({size} bytes)")
        return StoredFile(path=public_path, ext=ext, size=size)

    def delete(self, public_path: str) -> bool:
        try:
            target = self._resolve(public_path)
        except ValueError as e:
            _debug(str(e))
            return False
        if not target.is_file():
            return False
        target.unlink()
        _debug(f"Deleted {public_path}")
        return True

    def exists(self, public_path: str) -> bool:
        try:
            return self._resolve(public_path).is_file()
        except ValueError:
            return False
