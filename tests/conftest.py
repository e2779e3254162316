"""Pytest configuration and fixtures for ClearMarkup tests."""

import os
import tempfile
from typing import Any, Dict, Generator
from unittest.mock import MagicMock

import pytest
import sqlalchemy as sa
import yaml

from clearmarkup.core.database_manager import Base, DatabaseManager


def build_schema() -> sa.MetaData:
    """Tables used across the database tests."""
    metadata = sa.MetaData()
    sa.Table(
        "users",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, default="active"),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("created_at", sa.Integer, nullable=False, default=0),
    )
    sa.Table(
        "teams",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("region", sa.String(10), nullable=False),
        sa.Column("owner_id", sa.Integer, nullable=True),
    )
    sa.Table(
        "users_confirmations",
        metadata,
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("selector", sa.String(32), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False),
    )
    return metadata


@pytest.fixture
def schema() -> sa.MetaData:
    """The test schema as a fresh MetaData."""
    return build_schema()


@pytest.fixture
def temp_config_file() -> Generator[str, None, None]:
    """Create a temporary configuration file for testing."""
    test_config = {
        "app": {"name": "ClearMarkup Test", "environment": "testing"},
        "database": {"type": "sqlite", "name": ":memory:"},
        "logging": {
            "level": "DEBUG",
            "format": "text",
            "file": {"enabled": False},
            "console": {"enabled": True, "level": "DEBUG"},
        },
    }

    with tempfile.NamedTemporaryFile(suffix=".yaml", delete=False, mode="w") as tmp:
        yaml.dump(test_config, tmp)
        tmp_path = tmp.name

    yield tmp_path

    try:
        os.unlink(tmp_path)
    except OSError:
        pass


@pytest.fixture
def db_config() -> Dict[str, Any]:
    """Create a database configuration for testing."""
    return {
        "type": "sqlite",
        "name": ":memory:",
        "echo": False,
    }


@pytest.fixture
def config_manager_mock(db_config):
    """Create a mock ConfigManager for the DatabaseManager."""
    config_manager = MagicMock()
    config_manager.get.return_value = db_config
    return config_manager


@pytest.fixture
def logger_manager_mock():
    """Create a mock LoggingManager handing out mock loggers."""
    logger_manager = MagicMock()
    logger_manager.get_logger.return_value = MagicMock()
    return logger_manager


@pytest.fixture
def db_manager(config_manager_mock, logger_manager_mock) -> Generator[DatabaseManager, None, None]:
    """Create a DatabaseManager over an in-memory SQLite database with the test schema."""
    db_mgr = DatabaseManager(config_manager_mock, logger_manager_mock)
    db_mgr.initialize()
    db_mgr.create_tables(build_schema())
    db_mgr.create_tables(Base.metadata)

    yield db_mgr
    db_mgr.shutdown()


@pytest.fixture
def seeded_db(db_manager: DatabaseManager) -> DatabaseManager:
    """Database with a handful of users and teams."""
    db_manager.insert("users", [
        {"id": 1, "email": " ann@example.com ", "name": "Ann", "status": "active",
         "bio": "<p>Hello <b>there</b></p>", "created_at": 100},
        {"id": 2, "email": "bob@example.com", "name": "Bob", "status": "banned",
         "bio": "", "created_at": 200},
        {"id": 5, "email": "eve@example.com", "name": "Eve", "status": "active",
         "bio": None, "created_at": 300},
        {"id": 9, "email": "max@example.com", "name": "Max", "status": "active",
         "bio": "A fairly long biography that keeps going", "created_at": 400},
    ])
    db_manager.insert("teams", [
        {"id": 1, "name": "Berlin", "region": "EU", "owner_id": 5},
        {"id": 2, "name": "Paris", "region": "EU", "owner_id": 9},
        {"id": 3, "name": "Lisbon", "region": "EU", "owner_id": 9},
        {"id": 4, "name": "Austin", "region": "US", "owner_id": 2},
    ])
    return db_manager


@pytest.fixture
def primitive() -> MagicMock:
    """A call-counting stand-in for the data-access primitive."""
    double = MagicMock()
    double.select.return_value = []
    double.get.return_value = None
    double.has.return_value = False
    double.count.return_value = 0
    return double
