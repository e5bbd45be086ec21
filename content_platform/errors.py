"""Error taxonomy for the API.

Every error is terminal for the current request. Each kind maps to one fixed
HTTP status and a machine-readable code; `field` names the offending input
where one exists. The FastAPI exception handlers in `content_platform.api`
turn these into `{"detail": code, "field": field}` bodies.
"""

from __future__ import annotations

from typing import Optional


class ApiError(Exception):
    status_code: int = 500
    code: str = "error"

    def __init__(self, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(f"{self.code}: {field}" if field else self.code)

    def to_dict(self) -> dict:
        return {"detail": self.code, "field": self.field}


class Unauthenticated(ApiError):
    """Missing, malformed, badly signed or expired credential."""

    status_code = 401
    code = "unauthenticated"

    def __init__(self, reason: str = "missing_token") -> None:
        # The reason is logged, not returned.
        self.reason = reason
        super().__init__(None)


class UserNotFound(ApiError):
    """The token verified but its subject no longer exists."""

    status_code = 401
    code = "user_not_found"


class WrongCredentials(ApiError):
    status_code = 401
    code = "wrong_credentials"


class PermissionDenied(ApiError):
    status_code = 403
    code = "permission_denied"


class InvalidParams(ApiError):
    status_code = 400
    code = "invalid_params"


class InvalidOrderKey(InvalidParams):
    """An `order_by` value outside the resource's whitelist."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__("order_by")


class NotFound(ApiError):
    status_code = 404
    code = "not_found"


class AlreadyExists(ApiError):
    status_code = 409
    code = "already_exists"


class DatabaseFailed(ApiError):
    """Unexpected store failure. `detail` is for logs only."""

    status_code = 500
    code = "database_failed"

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(None)
