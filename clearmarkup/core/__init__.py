"""Core package containing the essential managers and components."""

from clearmarkup.core.action_log import ActionLog
from clearmarkup.core.app import ApplicationCore
from clearmarkup.core.base import BaseManager, ClearMarkupManager
from clearmarkup.core.config_manager import ConfigManager
from clearmarkup.core.database import Db, QueryBuilder
from clearmarkup.core.database_manager import Base, DatabaseManager
from clearmarkup.core.logging_manager import LoggingManager
