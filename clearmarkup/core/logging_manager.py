from __future__ import annotations

import atexit
import logging
import logging.handlers
import pathlib
import sys
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from clearmarkup.core.base import ClearMarkupManager

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 30


class LoggingManager(ClearMarkupManager):
    """Owns the root logger and hands out loggers to the other components.

    Two handlers can be configured: ``logging.console`` writes to stdout and
    ``logging.file`` writes to a size-rotated file. With ``logging.format``
    set to ``json`` records are rendered by python-json-logger and
    :meth:`get_logger` returns structlog loggers, so keyword arguments become
    fields of the record. Level and handler switches under ``logging.*`` are
    applied live when the configuration changes.
    """

    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    def __init__(self, config_manager: Any) -> None:
        super().__init__(name="logging_manager")
        self._config_manager = config_manager
        self._root_logger: Optional[logging.Logger] = None
        self._console_handler: Optional[logging.Handler] = None
        self._file_handler: Optional[logging.Handler] = None
        self._log_directory: Optional[pathlib.Path] = None
        self._enable_structlog = False
        self._handlers: List[logging.Handler] = []

    def initialize(self) -> None:
        """Replace the root logger's handlers with the configured ones.

        Raises:
            ManagerInitializationError: If the configuration cannot be read or
                the log file cannot be opened
        """
        try:
            logging_config: Mapping[str, Any] = self._config_manager.get("logging", {})
            level = self._parse_level(logging_config.get("level", "INFO"))
            self._enable_structlog = str(logging_config.get("format", "json")).lower() == "json"
            formatter = self._build_formatter()

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(level)
            for handler in list(self._root_logger.handlers):
                self._root_logger.removeHandler(handler)

            console_config = logging_config.get("console", {})
            if console_config.get("enabled", True):
                self._console_handler = self._attach(
                    logging.StreamHandler(sys.stdout),
                    self._parse_level(console_config.get("level", "INFO")),
                    formatter,
                )

            file_config = logging_config.get("file", {})
            if file_config.get("enabled", False):
                self._file_handler = self._attach(self._build_file_handler(file_config), level, formatter)

            if self._enable_structlog:
                self._configure_structlog()

            self._config_manager.register_listener("logging", self._on_config_changed)
            atexit.register(self.shutdown)

            self._mark_started()
            self.get_logger("logging_manager").info(
                "Logging Manager initialized",
                extra={"handlers": [type(handler).__name__ for handler in self._handlers]},
            )
        except Exception as e:
            raise self._initialization_failed(e) from e

    def _build_formatter(self) -> logging.Formatter:
        if self._enable_structlog:
            return jsonlogger.JsonFormatter(
                fmt=JSON_FORMAT,
                datefmt="%Y-%m-%dT%H:%M:%S%z",
                json_ensure_ascii=False,
            )
        return logging.Formatter(TEXT_FORMAT)

    def _build_file_handler(self, file_config: Mapping[str, Any]) -> logging.Handler:
        path = pathlib.Path(file_config.get("path", "logs/clearmarkup.log"))
        path.parent.mkdir(parents=True, exist_ok=True)
        self._log_directory = path.parent
        return logging.handlers.RotatingFileHandler(
            path,
            maxBytes=self._parse_rotation(file_config.get("rotation", "10 MB")),
            backupCount=self._parse_retention(file_config.get("retention", "30 days")),
            encoding="utf-8",
        )

    def _attach(self, handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        self._root_logger.addHandler(handler)
        self._handlers.append(handler)
        return handler

    def _parse_level(self, level: Any) -> int:
        if not isinstance(level, str):
            return logging.INFO
        return self.LOG_LEVELS.get(level.lower(), logging.INFO)

    @staticmethod
    def _parse_rotation(rotation: Union[str, int, None]) -> int:
        """Bytes per log file, from an int or a ``"<n> MB"`` string."""
        if isinstance(rotation, int):
            return rotation
        if isinstance(rotation, str) and rotation.upper().endswith("MB"):
            return int(rotation.split()[0]) * 1024 * 1024
        return DEFAULT_MAX_BYTES

    @staticmethod
    def _parse_retention(retention: Union[str, int, None]) -> int:
        """Rotated files to keep, from an int or a ``"<n> days"`` string."""
        if isinstance(retention, int):
            return retention
        if isinstance(retention, str) and retention.endswith("days"):
            return int(retention.split()[0])
        return DEFAULT_BACKUP_COUNT

    def _configure_structlog(self) -> None:
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Logger for a component; a structlog logger when JSON output is on."""
        if self._initialized and self._enable_structlog:
            return structlog.get_logger(name)
        return logging.getLogger(name)

    def _on_config_changed(self, key: str, value: Any) -> None:
        """Apply ``logging.level`` and ``logging.<handler>.level|enabled`` changes."""
        section, _, setting = key.partition(".")
        if section != "logging" or self._root_logger is None:
            return

        if setting == "level":
            level = self._parse_level(value)
            self._root_logger.setLevel(level)
            if self._file_handler is not None:
                self._file_handler.setLevel(level)
            return

        target, _, option = setting.partition(".")
        handler = {"console": self._console_handler, "file": self._file_handler}.get(target)
        if handler is None:
            return

        if option == "level":
            handler.setLevel(self._parse_level(value))
        elif option == "enabled":
            attached = handler in self._root_logger.handlers
            if value and not attached:
                self._root_logger.addHandler(handler)
            elif not value and attached:
                self._root_logger.removeHandler(handler)

    def shutdown(self) -> None:
        """Detach and close every handler this manager added.

        Raises:
            ManagerShutdownError: If the configuration listener cannot be removed
        """
        if not self._initialized:
            return

        try:
            self.get_logger("logging_manager").info("Shutting down Logging Manager")

            for handler in self._handlers:
                if self._root_logger is not None:
                    self._root_logger.removeHandler(handler)
                try:
                    handler.flush()
                    handler.close()
                except (OSError, ValueError):
                    pass
            self._handlers.clear()

            self._config_manager.unregister_listener("logging", self._on_config_changed)
            atexit.unregister(self.shutdown)
            self._mark_stopped()
        except Exception as e:
            raise self._shutdown_failed(e) from e

    def status(self) -> Dict[str, Any]:
        status = super().status()
        if self._initialized and self._root_logger is not None:
            attached = self._root_logger.handlers
            status.update({
                "log_directory": str(self._log_directory) if self._log_directory else None,
                "handlers": {
                    "console": self._console_handler is not None and self._console_handler in attached,
                    "file": self._file_handler is not None and self._file_handler in attached,
                },
                "structured_logging": self._enable_structlog,
            })
        return status
