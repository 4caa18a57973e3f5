# Overview: Domain error hierarchy shared by services and routes.

"""
Domain errors for order processing.

Every service raises a subclass of OrderDeskError. Routes translate them
with a single mapping (status_code + details) instead of one except
clause per service.
"""

from __future__ import annotations


class OrderDeskError(Exception):
    """Base class for expected, user-facing failures."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(OrderDeskError, ValueError):
    """Malformed input: empty cart, non-positive quantity, unknown method."""
    status_code = 400


class NotFoundError(OrderDeskError):
    """Referenced order, product or customer does not exist."""
    status_code = 404


class InvalidStateError(OrderDeskError):
    """Operation is forbidden for the order's current status."""
    status_code = 409


class InsufficientStockError(OrderDeskError):
    """A reservation asked for more units than the product has on hand."""
    status_code = 409

    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(
            "Insufficient stock",
            details={
                "product_id": product_id,
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class ConcurrencyConflict(Exception):
    """
    Transient write conflict that is safe to retry from the top of the
    unit of work (see services.concurrency.run_with_retry).
    """
