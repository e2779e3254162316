"""User action log model."""

from sqlalchemy import Column, Integer, String, Text

from clearmarkup.models.base import Base


class UserLog(Base):
    """One recorded user action, used for auditing and rate checks."""

    __tablename__ = "users_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    data = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UserLog(id={self.id}, user_id={self.user_id}, action='{self.action}')>"
