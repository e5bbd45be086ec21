"""Content platform backend (Typecho-compatible schema).

The backend exposes authenticated CRUD over posts, comments, attachments,
metas and users stored in a relational database.

Core concepts:
- Every authenticated operation resolves the bearer token to an Identity and
  checks it against a four-tier role hierarchy before touching data.
- List endpoints go through one declarative query builder: whitelisted sort
  keys, bound parameters, privacy scoping and meta aggregation.

See DESIGN.md for how the pieces fit together.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
