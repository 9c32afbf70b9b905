import os
import tempfile
from pathlib import Path

# Point the app at a throwaway SQLite file before `minidoodle` is imported.
TEST_DB = Path(tempfile.gettempdir()) / f"minidoodle-test-{os.getpid()}.db"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{TEST_DB}")
os.environ.setdefault("ENV", "dev")

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from minidoodle import models  # noqa: F401  (registers tables)


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test an empty schema in the application database."""
    from minidoodle.database import engine
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
    yield


@pytest.fixture()
def session():
    """An isolated in-memory SQLite session for service-level tests."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    engine.dispose()
