"""Unit tests for the exceptions module."""

import pytest

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


def test_clearmarkup_error():
    """Test the base ClearMarkupError class."""
    error = ClearMarkupError("Test error message")
    assert str(error) == "Test error message"
    assert error.message == "Test error message"
    assert error.details == {}

    details = {"key": "value", "number": 123}
    error = ClearMarkupError("Test with details", details=details, extra="x", skipped=None)
    assert error.details == {"key": "value", "number": 123, "extra": "x"}


def test_manager_error():
    """Test the ManagerError class."""
    error = ManagerError("Manager error message")
    assert str(error) == "Manager error message"
    assert "manager_name" not in error.details

    error = ManagerError("Manager error with name", manager_name="database_manager", details={"key": "value"})
    assert str(error) == "Manager error with name (Manager: database_manager)"
    assert error.details == {"key": "value", "manager_name": "database_manager"}


@pytest.mark.parametrize("error_class", [ManagerInitializationError, ManagerShutdownError])
def test_manager_lifecycle_errors(error_class):
    """Test the initialization and shutdown errors."""
    error = error_class("failed", manager_name="config_manager")

    assert isinstance(error, ManagerError)
    assert error.manager_name == "config_manager"


def test_configuration_error():
    """Test the ConfigurationError class."""
    error = ConfigurationError("Invalid value", config_key="database.type")

    assert error.config_key == "database.type"
    assert error.details["config_key"] == "database.type"


def test_database_and_query_errors():
    """Test the DatabaseError and QueryError classes."""
    error = DatabaseError("Database error", query="SELECT 1")
    assert error.query == "SELECT 1"
    assert error.details["query"] == "SELECT 1"

    query_error = QueryError("Unknown column", table="users")
    assert isinstance(query_error, DatabaseError)
    assert query_error.table == "users"
    assert query_error.query is None
    assert query_error.details == {"table": "users"}


@pytest.mark.parametrize("error_class", [
    ApplicationError,
    ManagerError,
    ConfigurationError,
    DatabaseError,
    QueryError,
])
def test_hierarchy(error_class):
    """Test that every error derives from ClearMarkupError."""
    with pytest.raises(ClearMarkupError):
        raise error_class("boom")
