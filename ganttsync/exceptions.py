"""
Custom exceptions for the ganttsync engine.
"""

from typing import Optional


class GanttSyncError(Exception):
    """Base exception for all ganttsync errors."""
    pass


class ValidationError(GanttSyncError):
    """Raised for bad input or a request the remote store rejected (4xx)."""
    pass


class NotFoundError(GanttSyncError):
    """Raised when a requested item or version is not found."""
    pass


class InvalidOperationError(GanttSyncError):
    """Raised when an operation is not allowed in the current state."""
    pass


class ConfigurationError(GanttSyncError):
    """Raised when there's a configuration or setup issue."""
    pass


class RemoteStoreError(GanttSyncError):
    """Raised when the remote store fails a request."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientError(RemoteStoreError):
    """Raised for network failures and 5xx-class server failures."""
    pass


class DuplicateError(GanttSyncError):
    """Raised when adding an item whose id already exists."""
    pass
