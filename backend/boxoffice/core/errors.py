"""
Error taxonomy for the box office core.

Every expected failure is a BoxOfficeError carrying a stable ErrorCode and
the HTTP status the API layer answers with. Callers branch on the class
(or on ``code``), never on message text.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    SOLD_OUT = "SOLD_OUT"
    CODE_NOT_FOUND = "CODE_NOT_FOUND"
    CODE_ALREADY_USED = "CODE_ALREADY_USED"
    INVALID_STATE = "INVALID_STATE"
    INVALID_ORDER = "INVALID_ORDER"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_USED = "ALREADY_USED"
    RESERVATION_CONFLICT = "RESERVATION_CONFLICT"
    LEDGER_INCONSISTENCY = "LEDGER_INCONSISTENCY"
    CODE_GENERATION_EXHAUSTED = "CODE_GENERATION_EXHAUSTED"


class BoxOfficeError(Exception):
    """Base error with code, user-safe message and HTTP status."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    status_code: int = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code.value, **self.context}


class ValidationError(BoxOfficeError):
    """Bad input shape or range. Raised before any state is touched."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class SoldOutError(BoxOfficeError):
    """Capacity of a tier cannot cover the request."""

    code = ErrorCode.SOLD_OUT
    status_code = 409

    def __init__(self, tier: str, requested: int, available: int) -> None:
        super().__init__(
            f"Tier '{tier}' is sold out (requested {requested}, available {available})",
            tier=tier,
            requested=requested,
            available=available,
        )
        self.tier = tier
        self.requested = requested
        self.available = available


class CodeNotFoundError(BoxOfficeError):
    code = ErrorCode.CODE_NOT_FOUND
    status_code = 404

    def __init__(self, exchange_code: str) -> None:
        super().__init__(f"Exchange code {exchange_code} does not exist", exchange_code=exchange_code)
        self.exchange_code = exchange_code


class CodeAlreadyUsedError(BoxOfficeError):
    code = ErrorCode.CODE_ALREADY_USED
    status_code = 409

    def __init__(self, exchange_code: str) -> None:
        super().__init__(f"Exchange code {exchange_code} has already been used", exchange_code=exchange_code)
        self.exchange_code = exchange_code


class InvalidStateError(BoxOfficeError):
    """Operation attempted from the wrong lifecycle state."""

    code = ErrorCode.INVALID_STATE
    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, **context: Any) -> None:
        if current is not None:
            context["current_status"] = current
        super().__init__(message, **context)
        self.current = current


class InvalidOrderError(InvalidStateError):
    """A ticket was presented whose order is not paid."""

    code = ErrorCode.INVALID_ORDER


class NotFoundError(BoxOfficeError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier: Any) -> None:
        super().__init__(f"{resource} {identifier} not found", resource=resource)
        self.resource = resource
        self.identifier = identifier


class AlreadyUsedError(BoxOfficeError):
    """Ticket was already checked in. Door staff need to see this."""

    code = ErrorCode.ALREADY_USED
    status_code = 409

    def __init__(self, ticket_code: str, used_at: Any = None) -> None:
        super().__init__(
            "Ticket has already been used",
            used_at=used_at.isoformat() if used_at is not None else None,
        )
        self.ticket_code = ticket_code
        self.used_at = used_at


class ReservationConflictError(BoxOfficeError):
    """Seats exist but the row kept changing under the reserve guard."""

    code = ErrorCode.RESERVATION_CONFLICT
    status_code = 409


class LedgerError(BoxOfficeError):
    """Inventory counters disagree with the requested movement."""

    code = ErrorCode.LEDGER_INCONSISTENCY
    status_code = 500


class CodeGenerationError(BoxOfficeError):
    """Could not find a free exchange code within the attempt budget."""

    code = ErrorCode.CODE_GENERATION_EXHAUSTED
    status_code = 500
