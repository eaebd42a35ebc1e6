"""Error types raised by route planning."""

from __future__ import annotations


class InvalidArgument(ValueError):
    """Raised for malformed planning input such as out-of-range coordinates."""


class MissingCourierLocation(ValueError):
    """Raised when a route is requested for a courier without a known position."""

    def __init__(self, courier_id: str) -> None:
        super().__init__(f"Courier '{courier_id}' has no current location; a start position is required.")
        self.courier_id = courier_id


class RecordNotFound(LookupError):
    """Raised when a courier or order referenced by a request does not exist."""
