"""Role hierarchy and ownership policy.

Roles are the four Typecho user groups, ordered:

    subscriber < contributor < editor < administrator

Each tier satisfies every requirement at or below it. All tier comparisons in
the codebase go through `require` / `authorize_on` / `check_role_change`.
"""

from __future__ import annotations

from typing import Optional

from content_platform.errors import InvalidParams, PermissionDenied
from content_platform.models import Identity, Role


def parse_role(group: Optional[str], *, field: str = "group") -> Role:
    """Parse client input, raising InvalidParams(field) for unknown names."""
    role = Role.from_group(group)
    if role is None:
        raise InvalidParams(field)
    return role


def has_tier(identity: Identity, minimum: Role) -> bool:
    return identity.role is not None and identity.role >= minimum


def require(identity: Identity, minimum: Role) -> Identity:
    """Return `identity` if its tier is at least `minimum`."""
    if not has_tier(identity, minimum):
        raise PermissionDenied()
    return identity


def authorize_on(identity: Identity, owner_id: Optional[int], *, bypass: Role = Role.EDITOR) -> None:
    """Allow the owner of a resource, or anyone at `bypass` tier or above."""
    if owner_id is not None and identity.id == int(owner_id):
        return
    if has_tier(identity, bypass):
        return
    raise PermissionDenied()


def check_role_change(identity: Identity, current_role: Optional[Role], requested_role: Role) -> None:
    """Only administrators may change a role (their own included)."""
    if has_tier(identity, Role.ADMINISTRATOR):
        return
    if requested_role != current_role:
        raise PermissionDenied()
