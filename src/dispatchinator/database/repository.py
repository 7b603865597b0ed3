"""User and activity repository.

Implements both collaborators the pipeline needs: the user service
(get/register/touch/stats) and the activity store (log/popular/daily/recent).
Methods return plain domain dataclasses, never live ORM objects.
"""

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ..core.types import Activity, User
from ..logging import get_logger
from .models import ActivityRecord, Base, UserRecord

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite stores naive datetimes; assume UTC and make aware
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _start_of_today() -> datetime:
    now = datetime.now(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _to_user(record: UserRecord) -> User:
    return User(
        id=record.external_id,
        username=record.username or "",
        first_name=record.first_name or "",
        last_name=record.last_name or "",
        language=record.language or "en",
        is_active=bool(record.is_active),
        created_at=_as_utc(record.created_at),
    )


class BotRepository:
    """Repository for user and activity records."""

    def __init__(self, engine: Engine):
        """Initialize repository with database engine.

        Args:
            engine: SQLAlchemy engine (use create_sqlite_engine())
        """
        self.engine = engine
        self.Session = sessionmaker(bind=engine)
        # SQLite has a single writer; sessions are serialized
        self._lock = threading.RLock()

        Base.metadata.create_all(engine)
        logger.info("Database repository initialized")

    def get_session(self) -> Session:
        """Get a new database session.

        Use with context manager:
            with repo.get_session() as session:
                # do stuff
                session.commit()
        """
        return self.Session()

    # ==================== User operations ====================

    def get(self, external_id: str) -> Optional[User]:
        """Get a user by platform id.

        Returns:
            User, or None if the user is not registered
        """
        with self._lock, self.get_session() as session:
            record = session.query(UserRecord).filter_by(external_id=external_id).first()
            return _to_user(record) if record else None

    def register(self, external_id: str, username: str, first_name: str, last_name: str) -> User:
        """Create a user, or refresh the names of an existing one.

        Returns:
            The stored User
        """
        with self._lock, self.get_session() as session:
            record = session.query(UserRecord).filter_by(external_id=external_id).first()
            if record:
                record.username = username
                record.first_name = first_name
                record.last_name = last_name
                record.updated_at = datetime.now(timezone.utc)
            else:
                record = UserRecord(
                    external_id=external_id,
                    username=username,
                    first_name=first_name,
                    last_name=last_name,
                )
                session.add(record)
            session.commit()
            session.refresh(record)
            return _to_user(record)

    def touch(self, external_id: str) -> None:
        """Update a user's last-active timestamp (no-op for unknown users)."""
        with self._lock, self.get_session() as session:
            record = session.query(UserRecord).filter_by(external_id=external_id).first()
            if record:
                record.last_active_at = datetime.now(timezone.utc)
                session.commit()

    def stats(self) -> Dict[str, int]:
        """Count users.

        Returns:
            Dict with total, active, new_today and active_today counts
        """
        today = _start_of_today()
        with self._lock, self.get_session() as session:
            total = session.query(func.count(UserRecord.id)).scalar() or 0
            active = session.query(func.count(UserRecord.id)).filter(
                UserRecord.is_active.is_(True)
            ).scalar() or 0
            new_today = session.query(func.count(UserRecord.id)).filter(
                UserRecord.created_at >= today
            ).scalar() or 0
            active_today = session.query(func.count(UserRecord.id)).filter(
                UserRecord.last_active_at >= today
            ).scalar() or 0
        return {
            "total": total,
            "active": active,
            "new_today": new_today,
            "active_today": active_today,
        }

    # ==================== Activity operations ====================

    def log(self, external_id: str, command_text: str, at: datetime) -> None:
        """Record a command invocation.

        Raises:
            LookupError: If the user is not registered
        """
        with self._lock, self.get_session() as session:
            user_id = session.query(UserRecord.id).filter_by(external_id=external_id).scalar()
            if user_id is None:
                raise LookupError(f"user {external_id} is not registered")
            session.add(ActivityRecord(user_id=user_id, command=command_text, created_at=at))
            session.commit()

    def popular(self, limit: int = 10) -> Dict[str, int]:
        """Most frequent commands, most frequent first."""
        with self._lock, self.get_session() as session:
            count = func.count(ActivityRecord.id).label("count")
            rows = (
                session.query(ActivityRecord.command, count)
                .group_by(ActivityRecord.command)
                .order_by(count.desc(), ActivityRecord.command)
                .limit(limit)
                .all()
            )
        return {command: n for command, n in rows}

    def daily(self) -> Dict[str, int]:
        """Today's counters (UTC day).

        Returns:
            Dict with new_users_today, activities_today and active_users_today
        """
        today = _start_of_today()
        with self._lock, self.get_session() as session:
            new_users = session.query(func.count(UserRecord.id)).filter(
                UserRecord.created_at >= today
            ).scalar() or 0
            activities = session.query(func.count(ActivityRecord.id)).filter(
                ActivityRecord.created_at >= today
            ).scalar() or 0
            active_users = session.query(func.count(func.distinct(ActivityRecord.user_id))).filter(
                ActivityRecord.created_at >= today
            ).scalar() or 0
        return {
            "new_users_today": new_users,
            "activities_today": activities,
            "active_users_today": active_users,
        }

    def recent(self, external_id: str, limit: int = 10) -> List[Activity]:
        """A user's most recent activity, newest first."""
        with self._lock, self.get_session() as session:
            rows = (
                session.query(ActivityRecord)
                .join(UserRecord)
                .filter(UserRecord.external_id == external_id)
                .order_by(ActivityRecord.created_at.desc(), ActivityRecord.id.desc())
                .limit(limit)
                .all()
            )
            return [
                Activity(
                    id=row.id,
                    user_id=external_id,
                    command=row.command,
                    created_at=_as_utc(row.created_at),
                )
                for row in rows
            ]
