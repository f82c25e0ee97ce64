from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Allocation


class DrawError(Exception):
    """Base class for every failure a draw or admin operation can report.

    ``status`` is the HTTP status the views answer with, ``retryable`` tells a
    client whether re-submitting the same request may succeed.
    """

    code = "draw_error"
    status = 400
    retryable = False
    default_message = "The draw could not be completed."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class DrawValidationError(DrawError):
    """Raised when required request fields are missing or malformed."""

    code = "validation_error"
    status = 400
    default_message = "requester_id and requester_name are required."


class AlreadyParticipatedError(DrawError):
    """Raised when the requester already holds an allocation."""

    code = "already_participated"
    status = 409
    default_message = "You have already taken part in the draw."

    def __init__(self, allocation: "Allocation", message: Optional[str] = None) -> None:
        super().__init__(message)
        self.allocation = allocation


class NoStockAvailableError(DrawError):
    """Raised when no prize has stock left."""

    code = "no_stock_available"
    status = 404
    default_message = "All prizes have been drawn."


class StockExhaustedError(DrawError):
    """Raised when the chosen prize ran out between snapshot and decrement."""

    code = "stock_exhausted"
    status = 503
    retryable = True
    default_message = "The selected prize was just taken, please try again."

    def __init__(self, prize_id: str, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.prize_id = prize_id


class DrawInternalError(DrawError):
    """Raised when the store fails during a draw."""

    code = "internal_error"
    status = 500
    default_message = "Internal server error, please try again later."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        prize_id: Optional[str] = None,
        requester_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.prize_id = prize_id
        self.requester_id = requester_id


class AllocationNotFoundError(DrawError):
    """Raised when an admin operation references an unknown allocation."""

    code = "allocation_not_found"
    status = 404
    default_message = "Allocation record not found."
