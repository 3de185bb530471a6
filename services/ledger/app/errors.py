"""
Ledger Service: error kinds

Every failure the ledger reports to a caller is a LedgerError. `kind` is the
stable name sent back in the API envelope; only StorageUnavailable is safe to
retry blindly.
"""


class LedgerError(Exception):
    kind = "LedgerError"
    status_code = 400
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidQuantity(LedgerError):
    kind = "InvalidQuantity"
    status_code = 400


class InsufficientAvailable(LedgerError):
    kind = "InsufficientAvailable"
    status_code = 409

    def __init__(self, requested: int, available: int, message: str | None = None) -> None:
        super().__init__(
            message
            or f"Insufficient stock: requested={requested}, available={available}"
        )
        self.requested = requested
        self.available = available


class OverAllocation(LedgerError):
    kind = "OverAllocation"
    status_code = 409


class InvalidAssignmentState(LedgerError):
    kind = "InvalidAssignmentState"
    status_code = 409


class NotFound(LedgerError):
    kind = "NotFound"
    status_code = 404


class StorageUnavailable(LedgerError):
    kind = "StorageUnavailable"
    status_code = 503
    retryable = True


class InvalidRequest(LedgerError):
    """Malformed HTTP request (wrong types, missing filters). API layer only."""
    kind = "InvalidRequest"
    status_code = 422


class ConcurrencyConflict(Exception):
    """Raised when a compare-and-set on an item row loses the race.

    Never leaves the storage layer: the transaction runner retries on it.
    """

    def __init__(self, item_id: str, expected_version: int | None = None) -> None:
        super().__init__(f"item {item_id} changed concurrently")
        self.item_id = item_id
        self.expected_version = expected_version
