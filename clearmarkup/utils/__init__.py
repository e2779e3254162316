"""Utility functions and classes for the ClearMarkup platform."""

from clearmarkup.utils.exceptions import (
    ApplicationError,
    ClearMarkupError,
    ConfigurationError,
    DatabaseError,
    ManagerError,
    ManagerInitializationError,
    ManagerShutdownError,
    QueryError,
)
