import pytest

from cadence.infrastructure.database import AppDatabase
from cadence.scheduling.types import Context


@pytest.fixture
def db() -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase()
    app_db._init_test()
    return app_db


@pytest.fixture
def task_repo(db):
    return db.task_repo


@pytest.fixture
def context() -> Context:
    return Context.system("test")
