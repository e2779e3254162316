from __future__ import annotations

import abc
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from clearmarkup.utils.exceptions import ManagerInitializationError, ManagerShutdownError


@runtime_checkable
class BaseManager(Protocol):
    """What the application core needs from each of its managers."""

    def initialize(self) -> None:
        ...

    def shutdown(self) -> None:
        ...

    def status(self) -> Dict[str, Any]:
        ...


class ClearMarkupManager(abc.ABC):
    """Lifecycle shared by the configuration, logging and database managers.

    Subclasses do their work in ``initialize``/``shutdown`` and report the
    outcome through :meth:`_mark_started`, :meth:`_mark_stopped` and the
    ``_initialization_failed``/``_shutdown_failed`` error factories, so every
    manager fails the same way and names itself in the error.
    """

    def __init__(self, name: str) -> None:
        self._name: str = name
        self._initialized: bool = False
        self._healthy: bool = False
        self._logger: Optional[Any] = None

    @abc.abstractmethod
    def initialize(self) -> None:
        """Acquire the manager's resources.

        Raises:
            ManagerInitializationError: If the manager cannot start
        """

    @abc.abstractmethod
    def shutdown(self) -> None:
        """Release the manager's resources. Calling it twice is harmless.

        Raises:
            ManagerShutdownError: If resources cannot be released
        """

    def _mark_started(self) -> None:
        self._initialized = True
        self._healthy = True

    def _mark_stopped(self) -> None:
        self._initialized = False
        self._healthy = False

    def _initialization_failed(self, error: Exception) -> ManagerInitializationError:
        return ManagerInitializationError(
            f'Failed to initialize {self._name}: {error}', manager_name=self._name
        )

    def _shutdown_failed(self, error: Exception) -> ManagerShutdownError:
        return ManagerShutdownError(
            f'Failed to shut down {self._name}: {error}', manager_name=self._name
        )

    def status(self) -> Dict[str, Any]:
        """Name and health flags; subclasses add their own sections."""
        return {
            'name': self._name,
            'initialized': self._initialized,
            'healthy': self._healthy,
        }

    @property
    def name(self) -> str:
        return self._name

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def healthy(self) -> bool:
        return self._healthy

    def set_logger(self, logger: Any) -> None:
        """Replace the logger used for the manager's own messages."""
        self._logger = logger
