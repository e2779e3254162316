"""Unit tests for the Application Core."""

from unittest.mock import MagicMock, patch

import pytest

from clearmarkup.core.app import ApplicationCore
from clearmarkup.core.config_manager import ConfigManager
from clearmarkup.core.database import Db
from clearmarkup.core.database_manager import DatabaseManager
from clearmarkup.utils.exceptions import ApplicationError


@pytest.fixture
def app_core(temp_config_file):
    """An initialized ApplicationCore on an in-memory database."""
    app = ApplicationCore(config_path=temp_config_file)
    app.initialize()
    yield app
    app.shutdown()


def test_app_core_initialization(temp_config_file):
    """Test that the ApplicationCore initializes correctly."""
    app = ApplicationCore(config_path=temp_config_file)
    app.initialize()

    assert app.is_initialized()
    assert app.get_manager("config_manager") is not None
    assert app.get_manager("logging_manager") is not None
    assert app.get_manager("database_manager") is not None

    app.shutdown()
    assert not app.is_initialized()
    assert app.get_manager("database_manager") is None


def test_app_core_get_manager(app_core):
    """Test retrieving managers from ApplicationCore."""
    assert app_core.get_manager("nonexistent") is None
    assert isinstance(app_core.get_manager_typed("config_manager", ConfigManager), ConfigManager)

    with pytest.raises(ApplicationError):
        app_core.get_manager_typed("config_manager", DatabaseManager)


def test_app_core_status(app_core):
    """Test getting status from ApplicationCore."""
    status = app_core.status()

    assert status["initialized"] is True
    assert set(status["managers"]) == {"config_manager", "logging_manager", "database_manager"}
    assert status["managers"]["database_manager"]["database"]["type"] == "sqlite"


def test_app_core_hands_out_builders(app_core):
    """Test that builders share the single database handle."""
    app_core.database.create_tables()

    first = app_core.db()
    second = app_core.db()

    assert isinstance(first, Db)
    assert first is not second
    first.table("users_logs").insert({"action": "signup", "created_at": 1})
    assert second.table("users_logs").filter({"action": "signup"}).count() == 1


def test_app_core_action_log(app_core):
    """Test the action log bound to the database handle."""
    app_core.database.create_tables()
    log = app_core.action_log()

    log.log("login_failed", user_id=3)

    assert log.check("login_failed", 1, 60, user_id=3)


def test_database_before_initialization():
    """Test that the database handle is unavailable before initialization."""
    app = ApplicationCore()

    with pytest.raises(ApplicationError):
        app.database


@patch("clearmarkup.core.app.ConfigManager")
def test_app_core_initialization_failure(mock_config_manager, temp_config_file):
    """Test that ApplicationCore wraps manager failures."""
    mock_instance = mock_config_manager.return_value
    mock_instance.initialize.side_effect = Exception("Config initialization error")

    app = ApplicationCore(config_path=temp_config_file)

    with pytest.raises(ApplicationError, match="Config initialization error"):
        app.initialize()
    assert not app.is_initialized()


def test_app_core_shutdown_failure(app_core):
    """Test that a failing manager shutdown is reported after the others ran."""
    config_manager = app_core.get_manager("config_manager")
    database_manager = app_core.get_manager("database_manager")
    database_manager.shutdown = MagicMock(side_effect=RuntimeError("stuck"))

    with pytest.raises(ApplicationError, match="database_manager"):
        app_core.shutdown()

    assert not config_manager.initialized
    assert not app_core.is_initialized()


def test_app_core_context_manager(temp_config_file):
    """Test initialization and shutdown through a with block."""
    with ApplicationCore(config_path=temp_config_file) as app:
        assert app.is_initialized()
        assert app.database.check_connection()

    assert not app.is_initialized()
