"""Collaborator interfaces the dispatch core depends on.

The pipeline only needs objects with these shapes; the SQLAlchemy-backed
``dispatchinator.database.BotRepository`` satisfies both.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol

from .types import Activity, User


class UserService(Protocol):
    def get(self, external_id: str) -> Optional[User]:
        """Return the user, or None when not registered. Raises on storage failure."""
        ...

    def register(self, external_id: str, username: str, first_name: str, last_name: str) -> User:
        ...

    def touch(self, external_id: str) -> None:
        """Best-effort update of the user's last-active timestamp."""
        ...

    def stats(self) -> Dict[str, int]:
        """Return {"total", "active", "new_today", "active_today"} counts."""
        ...


class ActivityStore(Protocol):
    def log(self, external_id: str, command_text: str, at: datetime) -> None:
        ...

    def popular(self, limit: int = 10) -> Dict[str, int]:
        ...

    def daily(self) -> Dict[str, int]:
        ...

    def recent(self, external_id: str, limit: int = 10) -> List[Activity]:
        ...
