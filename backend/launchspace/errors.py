from __future__ import annotations
from typing import Any


class LaunchError(Exception):
    """Base for coded domain failures. Rendered as {"error", "code", ...} by the API."""

    status_code = 400
    default_code = "ERROR"

    def __init__(self, message: str, code: str | None = None, **extra: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class ValidationFailed(LaunchError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class Conflict(LaunchError):
    status_code = 409
    default_code = "CONFLICT"


class NotFound(LaunchError):
    status_code = 404
    default_code = "NOT_FOUND"


class Unauthorized(LaunchError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class Forbidden(LaunchError):
    status_code = 403
    default_code = "FORBIDDEN"


class InvalidTransition(Conflict):
    default_code = "INVALID_TRANSITION"

    def __init__(self, project_id: str, current: str, attempted: str):
        super().__init__(
            f"Cannot {attempted} a submission in status '{current}'",
            project_id=project_id,
            current_status=current,
        )
