"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` and provides small helpers used by the
application and tests. PostgreSQL is the production backend; SQLite is
the embedded database used for local development and the test suite.
"""

from sqlalchemy import text
from sqlmodel import SQLModel, create_engine, Session
from .config import settings


def build_engine(url: str, echo: bool = False):
    """Create an engine for `url`.

    SQLite connections are shared across FastAPI worker threads, so the
    same-thread check is disabled. Server databases get a bounded,
    pre-pinged connection pool.
    """
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        echo=echo,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)


def create_db_and_tables(bind=None):
    """Create database tables using SQLModel metadata.

    Importing `models` registers every table on the metadata before
    `create_all` runs.
    """
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session


def ping(session: Session) -> bool:
    """Run a trivial query; raises if the database is unreachable."""
    return session.exec(text("SELECT 1")).first() is not None
