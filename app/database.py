# app/database.py
import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, create_engine, Session

from app.core.config import get_settings
from app.core.errors import ConcurrencyConflictError

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------
# Engine
#
# - Postgres: sslmode=require is appended when missing and the pool is
#   validated before use (pool_pre_ping).
# - SQLite: check_same_thread=False so request threads can share the pool.
# ---------------------------------------------------------


def build_engine(db_url: str, *, echo: bool = False, pool_size: int = 5):
    """
    Create an engine for `db_url` with the connection options each backend needs.
    """
    if db_url.startswith("sqlite"):
        return create_engine(
            db_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    # Append sslmode=require if it is not already present
    if db_url.startswith("postgresql") and "sslmode=" not in db_url:
        if "?" in db_url:
            db_url = db_url + "&sslmode=require"
        else:
            db_url = db_url + "?sslmode=require"

    return create_engine(
        db_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=0,
    )


engine = build_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
)


def create_db_and_tables() -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    Usage:

        from fastapi import Depends

        @router.get("/example")
        def example_endpoint(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine) as session:
        yield session


def new_session() -> Session:
    """Open a standalone session (background tasks, cron jobs)."""
    return Session(engine)


def get_session_factory() -> Callable[[], Session]:
    """
    FastAPI dependency returning a session factory.

    Background work runs after the request session is closed, so it opens
    its own sessions through this factory.
    """
    return new_session


def run_in_transaction(
    session: Session,
    work: Callable[[], T],
    *,
    attempts: int | None = None,
) -> T:
    """
    Run `work` as one atomic unit of work and commit.

    `work` must (re)load every row it needs from `session`: on a retry the
    previous attempt has been rolled back and all ORM state is expired.

    - OperationalError (serialization failure, deadlock, "database is
      locked") => rollback and retry, up to `attempts` times, then
      ConcurrencyConflictError.
    - Any other exception => rollback and re-raise.
    """
    max_attempts = attempts or settings.TX_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        try:
            result = work()
            session.commit()
            return result
        except OperationalError as exc:
            session.rollback()
            logger.warning(
                "Transaction conflict (attempt %s/%s): %s",
                attempt,
                max_attempts,
                exc.orig,
            )
        except Exception:
            session.rollback()
            raise

    raise ConcurrencyConflictError()
