"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Every
exception carries a stable ``code`` (the error kind) and a structured
``payload``; the API layer translates them into HTTP responses.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional


class OrderError(Exception):
    """Base class for order engine errors."""

    code = "OrderError"

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def as_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "detail": self.message, **self.payload}


class OrderValidationError(OrderError):
    """Missing or malformed required fields, quantity < 1, negative amounts."""

    code = "ValidationError"


class ItemsNotFound(OrderError):
    """One or more catalog items could not be resolved."""

    code = "ItemsNotFound"

    def __init__(self, missing_ids: Iterable[Any]) -> None:
        self.missing_ids = sorted(str(item_id) for item_id in missing_ids)
        super().__init__(
            f"Catalog items not found: {', '.join(self.missing_ids)}.",
            {"missing_ids": self.missing_ids},
        )


class OrderNotFound(OrderError):
    """The requested order does not exist or has been soft-deleted."""

    code = "NotFound"


class AllocationExhausted(OrderError):
    """No free serial number could be committed within the retry budget."""

    code = "AllocationExhausted"


class OrderLocked(OrderError):
    """Mutation attempted on a Delivered or Cancelled order."""

    code = "OrderLocked"


class OrderConflict(OrderError):
    """A concurrent update won the race for the same order."""

    code = "Conflict"


class InvalidOrderStatus(OrderError):
    """A structurally invalid status transition was requested."""

    code = "StateError"
