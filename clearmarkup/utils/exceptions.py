"""Exception hierarchy for ClearMarkup.

Every error carries a message and a ``details`` mapping. Subclasses name the
keyword fields they accept in ``fields``; those become attributes and, when
set, entries of ``details``. Any other keyword goes to ``details`` as well.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple


class ClearMarkupError(Exception):
    """Base exception for all ClearMarkup errors."""

    fields: Tuple[str, ...] = ()

    def __init__(self, message: str, **kwargs: Any) -> None:
        details: Dict[str, Any] = dict(kwargs.pop('details', None) or {})
        for field in self.fields:
            setattr(self, field, kwargs.pop(field, None))
            if getattr(self, field) is not None:
                details[field] = getattr(self, field)
        details.update({key: value for key, value in kwargs.items() if value is not None})

        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ApplicationError(ClearMarkupError):
    """The application core could not start, stop or serve a request."""


class ManagerError(ClearMarkupError):
    """A manager failed; ``manager_name`` says which one."""

    fields = ('manager_name',)
    manager_name: Optional[str]

    def __str__(self) -> str:
        if self.manager_name:
            return f'{self.message} (Manager: {self.manager_name})'
        return self.message


class ManagerInitializationError(ManagerError):
    """A manager failed to initialize."""


class ManagerShutdownError(ManagerError):
    """A manager failed to shut down cleanly."""


class ConfigurationError(ClearMarkupError):
    """Configuration could not be loaded, validated or saved."""

    fields = ('config_key',)
    config_key: Optional[str]


class DatabaseError(ClearMarkupError):
    """The database rejected or failed a statement; ``query`` holds its SQL when known."""

    fields = ('query',)
    query: Optional[str]


class QueryError(DatabaseError):
    """A condition map or builder call cannot be turned into a statement."""

    fields = DatabaseError.fields + ('table',)
    table: Optional[str]
