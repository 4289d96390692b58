"""Typed errors raised by the Boxinator core.

Every error carries a ``kind`` and a human readable ``message`` so the HTTP
layer can map it to a status code without looking at internal logic.
"""
from typing import Optional


class BoxinatorError(Exception):
    """Base exception for all Boxinator errors."""

    kind = "Error"
    status_code = 500
    default_message = "Unexpected error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class ValidationFailed(BoxinatorError):
    """Raised for malformed or out-of-range input."""

    kind = "ValidationFailed"
    status_code = 400
    default_message = "Validation failed"


class Unauthenticated(BoxinatorError):
    """Raised when no usable identity was presented."""

    kind = "Unauthenticated"
    status_code = 401
    default_message = "Authentication required"


class Forbidden(BoxinatorError):
    """Raised when the identity lacks permission for the action."""

    kind = "Forbidden"
    status_code = 403
    default_message = "Access denied"


class NotFound(BoxinatorError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found"


class InvalidCountry(BoxinatorError):
    """Raised when a destination country is missing or inactive."""

    kind = "InvalidCountry"
    status_code = 400
    default_message = "Invalid or inactive country"


class NotClaimable(BoxinatorError):
    """Raised when a shipment is not owned by a guest account."""

    kind = "NotClaimable"
    status_code = 400
    default_message = "This shipment cannot be claimed. It belongs to a registered user."


class AlreadyClaimed(BoxinatorError):
    """Raised when a concurrent claim upgraded the guest account first."""

    kind = "AlreadyClaimed"
    status_code = 409
    default_message = "This shipment has already been claimed"


class Conflict(BoxinatorError):
    """Raised when a concurrent mutation or uniqueness violation is detected."""

    kind = "Conflict"
    status_code = 409
    default_message = "Conflicting update"


class RateLimited(BoxinatorError):
    kind = "RateLimited"
    status_code = 429
    default_message = "Too many authentication attempts, please try again later"
