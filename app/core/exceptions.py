"""
Domain error types.

Only faults that cross a service boundary get a class here. Validation of
request shapes is left to Pydantic; dispatch faults never leave the
notification dispatcher.
"""

from typing import Optional


class StorageError(Exception):
    """The persistence layer failed on a primary write or read path."""

    def __init__(self, operation: str, original: Optional[Exception] = None):
        self.operation = operation
        self.original = original
        super().__init__(f"Storage failure during {operation}")


class InvalidTransitionError(ValueError):
    """A table status change was rejected by strict transition checking."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move table from '{current}' to '{requested}'")
