from __future__ import annotations

from typing import Any


class RentCircleError(Exception):
    """
    Base class for failures the core reports to its callers.

    `status_code` and `code` are what the HTTP layer renders; `extra` carries
    any machine-readable context (e.g. the id of a listing that was saved).
    """

    status_code = 400
    code = "error"

    def __init__(self, detail: str = "", **extra: Any) -> None:
        super().__init__(detail or self.code)
        self.detail = detail or self.code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"detail": self.detail, "code": self.code}
        out.update(self.extra)
        return out


class Unauthorized(RentCircleError):
    status_code = 401
    code = "unauthorized"


class Forbidden(RentCircleError):
    status_code = 403
    code = "forbidden"


class InvalidArgument(RentCircleError):
    status_code = 400
    code = "invalid_argument"


class Blocked(RentCircleError):
    status_code = 403
    code = "blocked"


class QuotaExceeded(RentCircleError):
    status_code = 409
    code = "quota_exceeded"


class NotFound(RentCircleError):
    status_code = 404
    code = "not_found"


class InvalidState(RentCircleError):
    status_code = 409
    code = "invalid_state"


class StorageFailure(RentCircleError):
    """Object-store error. Recoverable: retry the image phase only."""

    status_code = 502
    code = "storage_failure"


class PersistenceFailure(RentCircleError):
    status_code = 500
    code = "persistence_failure"


class RateLimited(RentCircleError):
    status_code = 429
    code = "rate_limited"
