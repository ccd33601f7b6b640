"""Error taxonomy for ticket sales and event management.

Every error carries an HTTP status and a user-safe message; raising one inside
``database.transaction()`` aborts the transaction.
"""

from __future__ import annotations


class TicketingError(Exception):
    """Base class for business-rule failures reported to the caller."""

    code = "TICKETING_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidRequest(TicketingError):
    """Raised for malformed or empty input."""

    code = "INVALID_REQUEST"


class NotFound(TicketingError):
    """Raised when an event, zone, seat, or ticket does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class Conflict(TicketingError):
    """Raised when a seat is no longer available or state forbids a change."""

    code = "CONFLICT"


class CapacityExceeded(TicketingError):
    """Raised when a purchase would oversell a zone."""

    code = "CAPACITY"

    def __init__(self, zone_name: str, *, remaining: int, requested: int):
        super().__init__(
            f"Zone {zone_name}: only {remaining} tickets left "
            f"(requested: {requested})"
        )
        self.zone_name = zone_name
        self.remaining = remaining
        self.requested = requested


class Unauthorized(TicketingError):
    """Raised when the caller does not own the ticket it tries to move."""

    code = "UNAUTHORIZED"
    status_code = 403


class TransactionTimeout(TicketingError):
    """Raised when a transaction runs past its time budget."""

    code = "TIMEOUT"
    status_code = 500
