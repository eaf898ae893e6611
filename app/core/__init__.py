"""
Core module initialization.
Exports configuration, logging and error types.
"""

from app.core.config import get_settings, Settings, EnvironmentMode, DispatchMode
from app.core.exceptions import StorageError, InvalidTransitionError

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "DispatchMode",
    "StorageError",
    "InvalidTransitionError",
]
