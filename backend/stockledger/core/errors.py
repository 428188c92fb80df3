"""Error taxonomy shared by services, repositories and the HTTP layer.

Every failure a caller can act on is a ``StockLedgerError``; the API maps
each kind to a status code in ``stockledger.main``.
"""

from typing import Any, Optional


class StockLedgerError(Exception):
    """Base class for all domain errors."""

    kind = "error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind}


class Unauthenticated(StockLedgerError):
    """No actor context was supplied."""

    kind = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class NotFound(StockLedgerError):
    """Referenced product, sale, reservation or audit is absent for this tenant."""

    kind = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidTransition(StockLedgerError):
    """Status change not permitted from the current state."""

    kind = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, requested: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(message)


class ValidationError(StockLedgerError):
    """Malformed input caught before any write."""

    kind = "validation_error"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class InsufficientStockError(ValidationError):
    """Raised when there's not enough available stock for an exit or reservation."""

    def __init__(self, product_name: str, product_id: int, available: int, needed: int):
        self.product_name = product_name
        self.product_id = product_id
        self.available = available
        self.needed = needed
        super().__init__(
            f"Insufficient stock for '{product_name}': need {needed}, have {available}",
            field="quantity",
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"product_id": self.product_id, "available": self.available, "needed": self.needed})
        return data


class TransientStoreError(StockLedgerError):
    """The underlying store timed out or is unavailable; safe to retry."""

    kind = "transient_store_error"
    status_code = 503
    retry_after = 1

    def __init__(self, message: str = "Store temporarily unavailable"):
        super().__init__(message)
