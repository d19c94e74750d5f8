"""Core board synchronization package."""

from .cache import LocalCacheStore
from .dispatcher import (
    BatchErrorPolicy,
    CommandContext,
    CommandDispatcher,
    LoggingMiddleware,
    Middleware,
)
from .handlers import CaseCommandHandlers
from .presence import PresenceHeartbeat
from .reconciler import RealtimeReconciler
from .session import BoardSession

__all__ = [
    "BatchErrorPolicy",
    "BoardSession",
    "CaseCommandHandlers",
    "CommandContext",
    "CommandDispatcher",
    "LocalCacheStore",
    "LoggingMiddleware",
    "Middleware",
    "PresenceHeartbeat",
    "RealtimeReconciler",
]
