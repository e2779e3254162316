"""Unit tests for the Logging Manager."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from clearmarkup.core.logging_manager import LoggingManager
from clearmarkup.utils.exceptions import ManagerInitializationError


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def logging_config(tmp_path: Path):
    """Create a logging configuration for testing."""
    return {
        "level": "INFO",
        "format": "text",
        "file": {
            "enabled": True,
            "path": str(tmp_path / "logs" / "test.log"),
            "rotation": "1 MB",
            "retention": "5 days",
        },
        "console": {"enabled": True, "level": "DEBUG"},
    }


@pytest.fixture
def config_manager_mock(logging_config):
    """Create a mock ConfigManager for the LoggingManager."""
    config_manager = MagicMock()
    config_manager.get.return_value = logging_config
    return config_manager


@pytest.fixture
def logging_manager(config_manager_mock):
    """An initialized LoggingManager."""
    manager = LoggingManager(config_manager_mock)
    manager.initialize()
    yield manager
    manager.shutdown()


def test_logging_manager_initialization(logging_manager, config_manager_mock, logging_config):
    """Test that the LoggingManager initializes correctly."""
    assert logging_manager.initialized
    assert logging_manager.healthy
    assert logging.getLogger().level == logging.INFO
    assert Path(logging_config["file"]["path"]).parent.is_dir()
    config_manager_mock.register_listener.assert_called_once_with(
        "logging", logging_manager._on_config_changed
    )


def test_text_format_writes_to_file(logging_manager, logging_config):
    """Test that records reach the log file in text format."""
    logger = logging_manager.get_logger("test_component")
    assert isinstance(logger, logging.Logger)

    logger.warning("Something happened")
    for handler in logging.getLogger().handlers:
        handler.flush()

    content = Path(logging_config["file"]["path"]).read_text(encoding="utf-8")
    assert "test_component - WARNING - Something happened" in content


def test_json_format_uses_structlog(config_manager_mock, logging_config):
    """Test that the json format hands out structured loggers."""
    logging_config["format"] = "json"
    manager = LoggingManager(config_manager_mock)
    manager.initialize()

    logger = manager.get_logger("structured")

    assert not isinstance(logger, logging.Logger)
    assert manager.status()["structured_logging"] is True
    logger.info("structured event", table="users")

    manager.shutdown()


def test_get_logger_before_initialization(config_manager_mock):
    """Test that a plain logger is returned before initialization."""
    manager = LoggingManager(config_manager_mock)

    assert isinstance(manager.get_logger("early"), logging.Logger)


def test_console_only(config_manager_mock, logging_config):
    """Test a configuration without a file handler."""
    logging_config["file"]["enabled"] = False
    manager = LoggingManager(config_manager_mock)
    manager.initialize()

    assert manager.status()["handlers"] == {"console": True, "file": False}

    manager.shutdown()


def test_initialization_failure():
    """Test that a broken configuration source fails initialization."""
    config_manager = MagicMock()
    config_manager.get.side_effect = RuntimeError("no config")

    with pytest.raises(ManagerInitializationError):
        LoggingManager(config_manager).initialize()


def test_config_change_updates_level(logging_manager):
    """Test that a level change reaches the root logger."""
    logging_manager._on_config_changed("logging.level", "ERROR")

    assert logging.getLogger().level == logging.ERROR
    assert logging_manager._file_handler.level == logging.ERROR


def test_config_change_toggles_handlers(logging_manager):
    """Test that handlers can be switched off and on again."""
    logging_manager._on_config_changed("logging.console.enabled", False)
    assert logging_manager.status()["handlers"]["console"] is False

    logging_manager._on_config_changed("logging.console.enabled", True)
    assert logging_manager.status()["handlers"]["console"] is True

    logging_manager._on_config_changed("logging.console.level", "ERROR")
    assert logging_manager._console_handler.level == logging.ERROR


@pytest.mark.parametrize("rotation, expected", [
    ("1 MB", 1024 * 1024),
    (2048, 2048),
    ("weekly", 10 * 1024 * 1024),
])
def test_parse_rotation(rotation, expected):
    """Test rotation size parsing."""
    assert LoggingManager._parse_rotation(rotation) == expected


@pytest.mark.parametrize("retention, expected", [
    ("5 days", 5),
    (3, 3),
    ("forever", 30),
])
def test_parse_retention(retention, expected):
    """Test retention parsing."""
    assert LoggingManager._parse_retention(retention) == expected


def test_logging_manager_shutdown(config_manager_mock):
    """Test that shutdown closes handlers and unregisters the listener."""
    manager = LoggingManager(config_manager_mock)
    manager.initialize()
    file_handler = manager._file_handler

    manager.shutdown()

    assert not manager.initialized
    assert file_handler not in logging.getLogger().handlers
    config_manager_mock.unregister_listener.assert_called_once_with(
        "logging", manager._on_config_changed
    )


def test_logging_manager_status(logging_manager):
    """Test the status report."""
    status = logging_manager.status()

    assert status["name"] == "logging_manager"
    assert status["initialized"]
    assert status["handlers"] == {"console": True, "file": True}
    assert status["structured_logging"] is False
    assert status["log_directory"].endswith("logs")
