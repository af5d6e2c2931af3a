"""Typed exceptions raised by ledger operations.

Every failure a caller can act on has its own class and a stable ``code``,
so the presentation layer can branch on type instead of message text.

    LedgerError (base)
    +-- ValidationError
    +-- NotFound
    +-- InsufficientTender
    +-- InvalidTransition
    +-- InvariantViolation
"""

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base exception for all ledger operation failures."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(LedgerError):
    """A required field is missing or a value is out of range."""

    code = "VALIDATION_ERROR"


class NotFound(LedgerError):
    """An entity id does not resolve."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} {entity_id!r} not found",
            {"entity": entity, "entity_id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientTender(LedgerError):
    """Cash tendered is below the amount due."""

    code = "INSUFFICIENT_TENDER"

    def __init__(self, total: Decimal, tendered: Decimal):
        super().__init__(
            f"Tendered {tendered} is less than total due {total}",
            {"total": str(total), "tendered": str(tendered)},
        )
        self.total = total
        self.tendered = tendered


class InvalidTransition(LedgerError):
    """A workflow action is not permitted from the current state."""

    code = "INVALID_TRANSITION"

    def __init__(self, action: str, current: str, reason: str | None = None):
        message = f"Cannot {action} from status {current}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"action": action, "current": current})
        self.action = action
        self.current = current


class InvariantViolation(LedgerError):
    """Ledger and entity state diverged. Indicates a bug."""

    code = "INVARIANT_VIOLATION"
