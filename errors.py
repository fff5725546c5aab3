"""Typed business errors.

Each error carries the HTTP status and machine-readable code it maps to at
the API boundary.  Services raise them; ``app.py`` turns them into the
``{"success": false, "error": {...}}`` envelope.
"""

from __future__ import annotations

from typing import Optional


class CommerceError(Exception):
    """Base class for every failure the lifecycle engine reports."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(CommerceError):
    """Malformed or missing input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFound(CommerceError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id=None):
        message = f"{entity} not found"
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        super().__init__(message, {"entity": entity, "id": entity_id})


class InvalidTransition(CommerceError):
    """The status table does not allow ``current -> target``."""

    status_code = 400
    code = "INVALID_TRANSITION"

    def __init__(self, entity: str, current: Optional[str], target: str):
        super().__init__(
            f"Invalid {entity} status transition from {current} to {target}",
            {"entity": entity, "from": current, "to": target},
        )
        self.current = current
        self.target = target


class PreconditionFailed(CommerceError):
    """A business rule beyond the status table is not met."""

    status_code = 400
    code = "PRECONDITION_FAILED"


class AlreadyConverted(CommerceError):
    status_code = 400
    code = "ALREADY_CONVERTED"


class AlreadyInvoiced(CommerceError):
    status_code = 400
    code = "ALREADY_INVOICED"


class AlreadyPaid(CommerceError):
    status_code = 400
    code = "ALREADY_PAID"


class AlreadyResolved(CommerceError):
    status_code = 400
    code = "ALREADY_RESOLVED"


class AlreadyIssued(CommerceError):
    status_code = 400
    code = "ALREADY_ISSUED"


class InvoiceCancelled(CommerceError):
    status_code = 400
    code = "INVOICE_CANCELLED"


class Unauthorized(CommerceError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(CommerceError):
    status_code = 403
    code = "FORBIDDEN"


class InternalError(CommerceError):
    status_code = 500
    code = "INTERNAL_ERROR"
