# Overview: Domain error taxonomy shared by services and routes.

"""
Every error carries an HTTP status, a human message and a details dict.
Routes turn any RetailError into {"error": message, "details": details}.

TransactionFailure never exposes the underlying database error text.
"""

from __future__ import annotations


class RetailError(Exception):
    """Base class for business and input errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(RetailError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, details)


class NotFound(RetailError):
    status_code = 404

    def __init__(self, resource: str, resource_id=None):
        message = f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class InsufficientStock(RetailError):
    status_code = 409

    def __init__(self, product_id: int, available: int, requested: int, message: str = "Insufficient stock"):
        super().__init__(
            message,
            {"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InsufficientHQStock(InsufficientStock):
    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(product_id, available, requested, message="Insufficient stock in HQ")


class NoHeadquarters(RetailError):
    status_code = 404

    def __init__(self):
        super().__init__("Headquarters branch not found")


class ProductNotAtHQ(RetailError):
    status_code = 404

    def __init__(self, product_id: int):
        super().__init__("Product not available in HQ", {"product_id": product_id})


class TotalMismatch(RetailError):
    def __init__(self, reported_total_cents: int, computed_total_cents: int):
        super().__init__(
            "Reported total does not match computed total",
            {
                "reported_total_cents": reported_total_cents,
                "computed_total_cents": computed_total_cents,
            },
        )


class Conflict(RetailError):
    """409-level business rule conflict (e.g., duplicate email, branch in use)."""

    status_code = 409


class BranchInactive(Conflict):
    def __init__(self, branch_id: int):
        super().__init__("Branch is inactive", {"branch_id": branch_id})


class InvalidStateTransition(Conflict):
    def __init__(self, resource: str, current: str, target: str):
        super().__init__(
            f"Cannot change {resource} from {current} to {target}",
            {"from": current, "to": target},
        )


class AuthenticationError(RetailError):
    status_code = 401


class PermissionDenied(RetailError):
    status_code = 403


class TransactionFailure(RetailError):
    """Underlying store error. The transaction has already been rolled back."""

    status_code = 500

    def __init__(self, message: str = "Transaction failed"):
        super().__init__(message)


class GatewayError(RetailError):
    """The payment gateway rejected or failed the request."""

    status_code = 502


class GatewayConfigError(RetailError):
    status_code = 503
