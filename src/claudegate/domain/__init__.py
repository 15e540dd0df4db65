"""Domain models for claudegate.

All models use Pydantic v2 for validation and serialization.
"""

from claudegate.domain.models import (
    ChatRequest,
    ConcurrencyStatus,
    DataEvent,
    EndEvent,
    ErrorEvent,
    OutboundEvent,
    PermissionConfig,
    PermissionMode,
    QueueEntry,
    QueueInfo,
    StartEvent,
)

__all__ = [
    "ChatRequest",
    "ConcurrencyStatus",
    "DataEvent",
    "EndEvent",
    "ErrorEvent",
    "OutboundEvent",
    "PermissionConfig",
    "PermissionMode",
    "QueueEntry",
    "QueueInfo",
    "StartEvent",
]
