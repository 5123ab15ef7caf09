"""Typed failures raised by the stock-ledger services.

Every error carries an HTTP-like ``status_code`` and a stable ``code`` so the
API layer can render it without knowing which workflow raised it. Errors are
raised inside the transaction scope and propagate unchanged; the session
dependency rolls the transaction back.
"""

from typing import Any


class DomainError(Exception):
    status_code: int = 400
    code: str = "bad_request"

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(DomainError):
    """Unknown id, or an id that belongs to another tenant."""

    status_code = 404
    code = "not_found"


class ValidationError(DomainError):
    """Malformed or policy-violating input.

    ``details`` is a list of ``{"field", "message"}`` dicts, matching the
    shape used for request validation failures.
    """

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None, details: Any = None):
        if details is None and field is not None:
            details = [{"field": field, "message": message, "type": "value_error"}]
        super().__init__(message, details=details)


class ConflictError(DomainError):
    """State-machine violation: double cancel, wrong state, open return."""

    status_code = 409
    code = "conflict"


class InsufficientStockError(DomainError):
    status_code = 409
    code = "insufficient_stock"

    def __init__(self, *, inventory_id: str, name: str, requested: int, available: int):
        super().__init__(
            f"Stock of {name} is not enough (requested {requested}, available {available})",
            details={
                "inventory_id": inventory_id,
                "requested": requested,
                "available": available,
            },
        )
        self.inventory_id = inventory_id
        self.requested = requested
        self.available = available


class ConsistencyError(ConflictError):
    """Ledger and aggregate disagree. Never expected under correct operation."""

    status_code = 500
    code = "consistency_error"
