"""Authentication / authorization.

- Users live in the (configurable) Typecho users table with a pbkdf2 password
  hash and a group: subscriber < contributor < editor < administrator.
- Clients authenticate with `Authorization: Bearer <jwt>`; the token carries
  only the user id. The group is re-read on every request so role changes
  apply immediately.
- Ownership checks allow the resource owner, or anyone at the bypass tier
  (editor for content, administrator for user records).
"""

from .crud import bootstrap_admin_if_needed, create_user
from .resolver import resolve, resolve_and_require
from .roles import authorize_on, check_role_change, require

__all__ = [
    "authorize_on",
    "bootstrap_admin_if_needed",
    "check_role_change",
    "create_user",
    "require",
    "resolve",
    "resolve_and_require",
]
