# Overview: Domain error taxonomy shared by the order, inventory and compliance services.

from __future__ import annotations


class OrderServiceError(Exception):
    """
    Base class for errors that are returned to the caller.

    Carries an HTTP status so routes can translate it without a lookup table.
    """
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(OrderServiceError):
    """Malformed input detected before any write."""
    status_code = 400


class EmptyCartError(OrderServiceError):
    """Checkout attempted with nothing in the cart."""
    status_code = 400


class NotFoundError(OrderServiceError):
    status_code = 404


class TenantAccessError(NotFoundError):
    """
    Resource belongs to another tenant.

    Reported exactly like a missing resource so existence is not revealed.
    """


class InvalidTransitionError(OrderServiceError):
    status_code = 409

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Cannot transition from {from_status} to {to_status}",
            details={"from_status": from_status, "to_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class ConcurrencyConflictError(OrderServiceError):
    """Lock contention that outlived the retry budget; the caller may retry."""
    status_code = 409


class ComplianceSinkUnavailableError(OrderServiceError):
    """The compliance sink rejected or could not accept a delivery."""
    status_code = 503
