# backend/core/__init__.py
from .config import Settings, settings
from .errors import ErrorKind, IntegrationError

__all__ = [
    "Settings",
    "settings",
    "ErrorKind",
    "IntegrationError",
]
