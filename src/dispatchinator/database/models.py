"""Database models for users and their command activity."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class UserRecord(Base):
    """A chat user known to the bot, keyed by the platform's user id."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(255))
    first_name = Column(String(255))
    last_name = Column(String(255))
    language = Column(String(16), default="en", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utc_now)
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now)
    last_active_at = Column(DateTime, default=_utc_now)

    activities = relationship("ActivityRecord", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<UserRecord(id={self.id}, external_id={self.external_id[:8]}...)>"


class ActivityRecord(Base):
    """One command invocation by a user."""

    __tablename__ = "user_activity"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    command = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utc_now, index=True)

    user = relationship("UserRecord", back_populates="activities")

    def __repr__(self):
        return f"<ActivityRecord(id={self.id}, user_id={self.user_id})>"
