"""
exceptions.py — Error taxonomy for the sync engine

Business Rules:
- StorageUnavailable is fatal for the calling operation, never for the process
- OfflineError is expected: callers queue work instead of failing
- UploadRejected keeps the order local for inspection
- NetworkTransientError is the only error the orchestrator retries
- ConflictUnresolved is a steady state surfaced via SyncStatus; raised only
  when a caller tries to change an order parked behind one

Called by: store.py, server_client.py, services/*, main.py
"""


class PosSyncError(Exception):
    """Base class for every engine error."""


class StorageUnavailable(PosSyncError):
    """The local durable store could not be read or written."""


class OfflineError(PosSyncError):
    """A network operation was requested while the terminal is offline."""


class NetworkTransientError(PosSyncError):
    """Timeout or connection failure talking to the transaction server."""


class ServerResponseError(PosSyncError):
    """The server answered with an unexpected non-2xx status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"Server responded {status_code}")


class UploadRejected(PosSyncError):
    """The server answered success=false for an uploaded order."""

    def __init__(self, order_id: str, error: str | None = None):
        self.order_id = order_id
        self.error = error or "rejected"
        super().__init__(f"Order {order_id} rejected: {self.error}")


class ConflictUnresolved(PosSyncError):
    """An order is parked behind a conflict awaiting an operator decision."""

    def __init__(self, order_id: str, conflict_id: str | None = None):
        self.order_id = order_id
        self.conflict_id = conflict_id
        super().__init__(f"Order {order_id} has an unresolved conflict")


class OrderNotFound(PosSyncError, LookupError):
    """No local order with that id."""


class OrderLocked(PosSyncError):
    """A synced order can no longer be changed locally."""


class ConflictNotFound(PosSyncError, LookupError):
    """No conflict record with that id."""
