"""
Error taxonomy for the Jelly codec.

All codec errors derive from JellyError. They are terminal for the stream
instance that raised them: the encoder or decoder refuses further work until
reset() is called.
"""

from typing import Optional


class JellyError(Exception):
    """Base class for all codec errors."""
    pass


class ProtocolViolationError(JellyError):
    """Raised when a row or statement breaks the stream contract."""

    def __init__(self, message: str, row_index: Optional[int] = None):
        self.row_index = row_index
        if row_index is not None:
            message = f"{message} (row {row_index})"
        super().__init__(message)


class MalformedInputError(JellyError):
    """Raised when a transport unit cannot be parsed into a stream row."""

    def __init__(self, message: str, size: int = 0):
        self.size = size
        super().__init__(message)


class ResourceLimitError(JellyError):
    """Raised when a lookup table would grow past its configured ceiling."""

    def __init__(self, table: str, limit: int, requested: int):
        self.table = table
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"{table} table exceeded its ceiling: "
            f"id {requested} > max {limit}"
        )


class ConfigValidationError(JellyError):
    """Stream options validation error."""
    pass
