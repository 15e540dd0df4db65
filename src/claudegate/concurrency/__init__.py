"""Request admission for claudegate.

Public API:
    ConcurrencyLimiter -- Bounded executor with a FIFO wait queue
    QueueTimeoutError -- A queued job waited too long
    LimiterShutdownError -- A queued job was rejected on shutdown
"""

from claudegate.concurrency.limiter import (
    ConcurrencyError,
    ConcurrencyLimiter,
    LimiterShutdownError,
    QueueTimeoutError,
)

__all__ = [
    "ConcurrencyError",
    "ConcurrencyLimiter",
    "LimiterShutdownError",
    "QueueTimeoutError",
]
