"""Database models for ClearMarkup."""

from clearmarkup.models.base import Base
from clearmarkup.models.user_log import UserLog

__all__ = ["Base", "UserLog"]
