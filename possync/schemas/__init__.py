"""Pydantic schemas — re-exported for convenience."""

from .errors import ErrorResponse  # noqa: F401
from .orders import (  # noqa: F401
    LocalOrderOut,
    OrderAmend,
    OrderItemIn,
    OrderUploadPayload,
    SaleIn,
    ServerOrder,
    UploadResponse,
)
from .sync import (  # noqa: F401
    ConflictOut,
    ConflictResolveIn,
    CycleReport,
    SyncEvent,
    SyncStatus,
    UploadReport,
)
