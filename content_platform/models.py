from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional


class Role(IntEnum):
    """The four Typecho user groups as ordered tiers."""

    SUBSCRIBER = 0
    CONTRIBUTOR = 1
    EDITOR = 2
    ADMINISTRATOR = 3

    @property
    def group(self) -> str:
        """Stored (Typecho) group name."""
        return self.name.lower()

    @classmethod
    def from_group(cls, group: Optional[str]) -> Optional["Role"]:
        """Parse a stored group name; unknown names give None."""
        g = (group or "").strip().upper()
        if g in cls.__members__:
            return cls[g]
        return None


@dataclass(frozen=True)
class Identity:
    """The authenticated actor for one request.

    Built by the credential resolver from the users table, never from token
    claims. `role` is None when the stored group is not a known tier.
    """

    id: int
    role: Optional[Role]
    name: str
    screen_name: Optional[str] = None
    mail: Optional[str] = None
    url: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Identity":
        return cls(
            id=int(row["uid"]),
            role=Role.from_group(row.get("group")),
            name=str(row.get("name") or ""),
            screen_name=row.get("screenName"),
            mail=row.get("mail"),
            url=row.get("url"),
        )


@dataclass(frozen=True)
class AttachmentText:
    """File metadata stored (as JSON) in an attachment's `text` column."""

    name: str
    path: str
    size: int
    type: str
    mime: str
