"""SQLite database schema, migrations, and AppDatabase composition root."""

from __future__ import annotations

import contextlib
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from cadence.infrastructure.config import DB_BUSY_TIMEOUT, DB_PATH
from cadence.infrastructure.logger import logger

# Fixed-width UTC format: lexical order of stored values equals time order.
STORAGE_DATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def to_storage_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(STORAGE_DATE_TIME_FORMAT)


def from_storage_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, STORAGE_DATE_TIME_FORMAT).replace(tzinfo=UTC)


def create_schema(db: sqlite3.Connection) -> None:
    """Create all tables and indexes. Safe to call multiple times (IF NOT EXISTS)."""
    db.executescript("""
        CREATE TABLE IF NOT EXISTS scheduled_tasks (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            task_class TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'scheduled',
            run_interval INTEGER NOT NULL,
            next_execution_time TEXT NOT NULL,
            last_execution_time TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_next_execution_time ON scheduled_tasks(next_execution_time);
        CREATE INDEX IF NOT EXISTS idx_status ON scheduled_tasks(status);

        CREATE TABLE IF NOT EXISTS task_run_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id TEXT NOT NULL,
            run_at TEXT NOT NULL,
            duration_ms INTEGER NOT NULL,
            status TEXT NOT NULL,
            error TEXT,
            FOREIGN KEY (task_id) REFERENCES scheduled_tasks(id)
        );
        CREATE INDEX IF NOT EXISTS idx_task_run_logs ON task_run_logs(task_id, run_at);
    """)

    _run_schema_migrations(db)


def _run_schema_migrations(db: sqlite3.Connection) -> None:
    """Run ALTER TABLE migrations. Each is wrapped in try/except for idempotency."""

    # Add updated_at column to databases created before it existed
    try:
        db.execute("ALTER TABLE scheduled_tasks ADD COLUMN updated_at TEXT")
        db.commit()
    except sqlite3.OperationalError:
        pass


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open a connection suitable for sharing the file with other scheduler processes."""
    conn = sqlite3.connect(str(db_path), timeout=DB_BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    with contextlib.suppress(sqlite3.Error):
        conn.execute("PRAGMA journal_mode=WAL")
    return conn


class AppDatabase:
    """Composition root that initializes the DB and exposes repositories."""

    def __init__(self) -> None:
        self._db: sqlite3.Connection | None = None
        self.task_repo: TaskRepository | None = None  # type: ignore[name-defined]

    @property
    def db(self) -> sqlite3.Connection:
        assert self._db is not None, "Database not initialized. Call init() first."
        return self._db

    @property
    def is_initialized(self) -> bool:
        return self._db is not None

    def init(self, db_path: Path | str | None = None) -> None:
        """Open (or create) the database file, by default at the configured location."""
        path = Path(db_path) if db_path is not None else DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._db = connect(path)
        self._init_repos()
        logger.info("Database ready", path=str(path))

    def _init_test(self) -> None:
        """For tests only. Creates a fresh in-memory database."""
        self._db = sqlite3.connect(":memory:")
        self._db.row_factory = sqlite3.Row
        self._init_repos()

    def _init_repos(self) -> None:
        assert self._db is not None
        create_schema(self._db)

        # Import here to avoid circular imports
        from cadence.scheduling.repository import TaskRepository

        self.task_repo = TaskRepository(self._db)

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None
            self.task_repo = None


# Singleton instance
database = AppDatabase()
