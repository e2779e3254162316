from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from clearmarkup.core.action_log import ActionLog
from clearmarkup.core.base import BaseManager
from clearmarkup.core.config_manager import ConfigManager
from clearmarkup.core.database.query_builder import Db
from clearmarkup.core.database_manager import DatabaseManager
from clearmarkup.core.logging_manager import LoggingManager
from clearmarkup.utils.exceptions import ApplicationError

T = TypeVar('T')


class ApplicationCore:
    """The application core.

    Creates the configuration, logging and database managers in dependency
    order, owns the single database handle of the process and hands out
    query builders bound to it.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize the application core.

        Args:
            config_path: Optional path to configuration file
        """
        self._config_path = config_path
        self._managers: Dict[str, BaseManager] = {}
        self._init_order: List[str] = []
        self._initialized = False
        self._logger: Optional[Any] = None

    def initialize(self) -> None:
        """Initialize the application core.

        Raises:
            ApplicationError: If initialization fails
        """
        if self._initialized:
            return

        try:
            config_manager = ConfigManager(config_path=self._config_path)
            self._start('config_manager', config_manager)

            logging_manager = LoggingManager(config_manager)
            self._start('logging_manager', logging_manager)
            config_manager.set_logger(logging_manager)
            self._logger = logging_manager.get_logger('app_core')

            database_manager = DatabaseManager(config_manager, logging_manager)
            self._start('database_manager', database_manager)

            self._initialized = True
            self._logger.info(
                f"{config_manager.get('app.name', 'ClearMarkup')} initialization complete"
            )
        except Exception as e:
            if self._logger:
                self._logger.error(f'Failed to initialize application: {str(e)}', exc_info=True)
            else:
                logging.getLogger('app_core').error(f'Failed to initialize application: {str(e)}')
            self._shutdown_managers()
            raise ApplicationError(f'Failed to initialize application: {str(e)}') from e

    def _start(self, name: str, manager: BaseManager) -> None:
        manager.initialize()
        self._managers[name] = manager
        self._init_order.append(name)

    def get_manager(self, name: str) -> Optional[BaseManager]:
        """Get a manager by name.

        Args:
            name: Name of the manager

        Returns:
            The manager or None if not found
        """
        return self._managers.get(name)

    def get_manager_typed(self, name: str, manager_type: Type[T]) -> Optional[T]:
        """Get a manager by name, checking its type."""
        manager = self._managers.get(name)
        if manager is not None and not isinstance(manager, manager_type):
            raise ApplicationError(
                f"Manager '{name}' is {type(manager).__name__}, not {manager_type.__name__}"
            )
        return manager

    @property
    def database(self) -> DatabaseManager:
        """The process-wide data-access primitive."""
        database = self.get_manager_typed('database_manager', DatabaseManager)
        if database is None or not self._initialized:
            raise ApplicationError('Application is not initialized')
        return database

    def db(self) -> Db:
        """Create a fresh query builder bound to the database handle."""
        logging_manager = self.get_manager_typed('logging_manager', LoggingManager)
        logger = logging_manager.get_logger('query_builder') if logging_manager else None
        return Db(self.database, logger)

    def action_log(self) -> ActionLog:
        """Create an action log bound to the database handle."""
        logging_manager = self.get_manager_typed('logging_manager', LoggingManager)
        logger = logging_manager.get_logger('action_log') if logging_manager else None
        return ActionLog(self.database, logger)

    def _shutdown_managers(self) -> List[str]:
        """Shut managers down in reverse start order; returns the names that failed."""
        failed: List[str] = []
        for name in reversed(self._init_order):
            manager = self._managers.get(name)
            if manager is None:
                continue
            try:
                manager.shutdown()
            except Exception as e:
                failed.append(name)
                logging.getLogger('app_core').error(f'Error shutting down {name}: {str(e)}')
        self._managers.clear()
        self._init_order.clear()
        return failed

    def shutdown(self) -> None:
        """Shutdown the application core.

        Shuts down all managers in reverse dependency order.

        Raises:
            ApplicationError: If a manager fails to shut down
        """
        if not self._initialized:
            return

        if self._logger:
            self._logger.info('Shutting down application')

        failed = self._shutdown_managers()
        self._initialized = False

        if failed:
            raise ApplicationError(f"Failed to shut down: {', '.join(failed)}")

    def is_initialized(self) -> bool:
        """Check if the application is initialized."""
        return self._initialized

    def status(self) -> Dict[str, Any]:
        """Get the status of the application and its managers."""
        return {
            'initialized': self._initialized,
            'managers': {name: manager.status() for name, manager in self._managers.items()},
        }

    def __enter__(self) -> "ApplicationCore":
        self.initialize()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown()
