"""
Typed failures of the sale unit of work.

Every failure carries a stable ``kind`` (what the POS shows or branches on)
and a ``details`` dict. Callers must be able to tell "fix your cart"
(validation, stock, credit, unknown ids) from "try again later"
(persistence).
"""

from __future__ import annotations

from ..money import Money


class TransactionError(Exception):
    """Base class for sale failures."""

    kind = "TransactionError"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "success": False,
            "errorKind": self.kind,
            "message": str(self),
            "details": self.details,
        }


class ValidationError(TransactionError):
    """Rejected before any mutation: empty cart, bad quantity, bad discount, missing member."""

    kind = "ValidationError"
    http_status = 400


class InsufficientStock(TransactionError):
    kind = "InsufficientStock"
    http_status = 409

    def __init__(self, product_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: available {available}, requested {requested}",
            details={"productId": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InsufficientCredit(TransactionError):
    kind = "InsufficientCredit"
    http_status = 409

    def __init__(self, member_id: int, available_cents: int, requested_cents: int):
        super().__init__(
            f"Insufficient credit for member {member_id}",
            details={
                "memberId": member_id,
                "available": str(Money(available_cents)),
                "requested": str(Money(requested_cents)),
            },
        )
        self.member_id = member_id
        self.available_cents = available_cents
        self.requested_cents = requested_cents


class MemberNotFound(TransactionError):
    kind = "MemberNotFound"
    http_status = 404

    def __init__(self, member_id: int):
        super().__init__(f"Member {member_id} not found", details={"memberId": member_id})
        self.member_id = member_id


class ProductNotFound(TransactionError):
    kind = "ProductNotFound"
    http_status = 404

    def __init__(self, product_id: int, reason: str = "not found"):
        super().__init__(
            f"Product {product_id} {reason}",
            details={"productId": product_id, "reason": reason},
        )
        self.product_id = product_id


class PersistenceError(TransactionError):
    """Datastore failure, lock timeout or lost connection. Rolled back; safe to retry."""

    kind = "PersistenceError"
    http_status = 503
