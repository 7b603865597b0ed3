"""SQLite engine construction."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from ..logging import get_logger

logger = get_logger(__name__)


def create_sqlite_engine(db_path: str = ":memory:", echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for a SQLite database.

    Connections are shared across threads (the activity log writes from a
    worker pool). An in-memory database uses a single static connection so
    every session sees the same data.

    Args:
        db_path: Path to the SQLite database file, or ":memory:"
        echo: Log every SQL statement

    Returns:
        SQLAlchemy Engine
    """
    if db_path in ("", ":memory:"):
        engine = create_engine(
            "sqlite://",
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        logger.info("Database engine created (in-memory)")
        return engine

    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        connect_args={"check_same_thread": False},
    )
    logger.info(f"Database engine created at {db_path}")
    return engine
