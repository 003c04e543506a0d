"""Error taxonomy raised by the membership core."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status

from .models import Principal


class MembershipError(Exception):
    """Base class for domain failures surfaced to callers."""

    code = "membership_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = dict(detail) if detail else None

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class ValidationError(MembershipError):
    """Bad or inactive input such as an unknown or disabled plan."""

    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(MembershipError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(MembershipError):
    """Duplicate pending submission, name collision, or a lost race."""

    code = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidStateError(ConflictError):
    """Illegal state transition, e.g. rejecting an approved submission."""

    code = "invalid_state"


class UnauthorizedError(MembershipError):
    code = "admin_required"
    status_code = status.HTTP_403_FORBIDDEN


class InvalidTokenError(MembershipError):
    """Unknown, used or expired password-reset token."""

    code = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED


def require_admin(principal: Optional[Principal]) -> Principal:
    """Return the principal when it carries the admin role."""

    if principal is None or not principal.is_admin:
        raise UnauthorizedError("Administrator privileges are required.")
    return principal
