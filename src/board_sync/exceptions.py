"""Error taxonomy for the board sync core."""

from typing import Optional


class BoardSyncError(Exception):
    """Base class for all board sync errors."""


class NotFoundError(BoardSyncError):
    """Referenced case id is absent from the cache or the store."""

    def __init__(self, case_id: str, message: Optional[str] = None):
        self.case_id = case_id
        super().__init__(message or f"Case not found: {case_id}")


class UnknownCommandError(BoardSyncError):
    """Dispatch of a command name with no registered handler."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"No handler registered for: {name}")


class ValidationError(BoardSyncError):
    """Malformed command payload."""

    def __init__(self, name: str, detail: str):
        self.name = name
        self.detail = detail
        super().__init__(f"Invalid payload for {name}: {detail}")


class TransientIOError(BoardSyncError):
    """Persistence or transport failure on an individual operation."""


class DispatcherNotReadyError(BoardSyncError):
    """Dispatch attempted before a command context was set."""
