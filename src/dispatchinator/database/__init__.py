"""SQLAlchemy persistence for users and command activity."""

from .engine import create_sqlite_engine
from .models import ActivityRecord, Base, UserRecord
from .repository import BotRepository

__all__ = [
    "ActivityRecord",
    "Base",
    "BotRepository",
    "UserRecord",
    "create_sqlite_engine",
]
