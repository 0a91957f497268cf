#  Project Scaffolder - Database Connection
#
#  Async SQLite manager with WAL mode and transaction support.
#  The schema is applied inline on every start (CREATE IF NOT EXISTS).
#
#  Depends on: models/enums.py
#  Used by:    container.py (via DI), services/*, routes/*, tests

import asyncio
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from scaffolder.models.enums import DeploymentStatus, GenerationStatus, ProjectStatus

logger = logging.getLogger("scaffolder.db")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT,
    display_name TEXT NOT NULL DEFAULT '',
    role TEXT NOT NULL DEFAULT 'user',
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at REAL NOT NULL,
    last_login_at REAL
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    tech_stack_json TEXT NOT NULL DEFAULT '[]',
    prompt TEXT,
    generated_files_json TEXT,
    github_repo TEXT,
    deployment_url TEXT,
    env_variables_json TEXT NOT NULL DEFAULT '{}',
    version INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'DRAFT',
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL,
    last_deployed_at REAL
);

CREATE TABLE IF NOT EXISTS code_generations (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    prompt TEXT NOT NULL,
    model TEXT NOT NULL,
    provider TEXT NOT NULL,
    output_json TEXT,
    token_usage_json TEXT,
    duration_ms INTEGER,
    status TEXT NOT NULL DEFAULT 'PENDING',
    error_message TEXT,
    created_at REAL NOT NULL,
    completed_at REAL
);

CREATE TABLE IF NOT EXISTS deployments (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    provider TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'PENDING',
    url TEXT,
    external_id TEXT,
    error_message TEXT,
    started_at REAL NOT NULL,
    completed_at REAL
);

CREATE TABLE IF NOT EXISTS audit_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT REFERENCES users(id) ON DELETE SET NULL,
    action TEXT NOT NULL,
    resource TEXT NOT NULL,
    resource_id TEXT,
    old_value_json TEXT,
    new_value_json TEXT,
    details_json TEXT,
    severity TEXT NOT NULL DEFAULT 'INFO',
    category TEXT NOT NULL DEFAULT 'data_access',
    ip_address TEXT,
    user_agent TEXT,
    request_id TEXT,
    created_at REAL NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner_id);
CREATE INDEX IF NOT EXISTS idx_projects_status ON projects(status);
CREATE INDEX IF NOT EXISTS idx_generations_project ON code_generations(project_id);
CREATE INDEX IF NOT EXISTS idx_generations_status ON code_generations(status);
CREATE INDEX IF NOT EXISTS idx_deployments_project ON deployments(project_id);
CREATE INDEX IF NOT EXISTS idx_deployments_status ON deployments(status);
CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_logs(user_id);
CREATE INDEX IF NOT EXISTS idx_audit_resource ON audit_logs(resource, resource_id);
CREATE INDEX IF NOT EXISTS idx_audit_created ON audit_logs(created_at);
"""

_INTERRUPTED = "Interrupted by server restart"


# ---------------------------------------------------------------------------
# Database class
# ---------------------------------------------------------------------------

class Database:
    """Async SQLite database with WAL mode.

    aiosqlite runs SQLite on a dedicated background thread; the asyncio.Lock
    in transaction() serializes coroutines sharing the connection.
    """

    def __init__(self):
        self._conn: aiosqlite.Connection | None = None
        self._path: Path | None = None
        self._in_transaction: bool = False
        self._tx_lock: asyncio.Lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None

    async def init(self, db_path: str | Path):
        """Open or create the database, apply schema, recover stuck rows."""
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

        await self._recover_interrupted()

        logger.info("Database initialized at %s", self._path)

    async def _recover_interrupted(self):
        """Fail generations, deployments and projects left mid-flight by a crash."""
        if not self._conn:
            return
        now = time.time()
        cursor = await self._conn.execute(
            "UPDATE code_generations SET status = ?, error_message = ?, completed_at = ? "
            "WHERE status IN (?, ?)",
            (GenerationStatus.FAILED, _INTERRUPTED, now,
             GenerationStatus.PENDING, GenerationStatus.PROCESSING),
        )
        if cursor.rowcount > 0:
            logger.info("Recovered %d interrupted generation(s)", cursor.rowcount)
        cursor = await self._conn.execute(
            "UPDATE deployments SET status = ?, error_message = ?, completed_at = ? "
            "WHERE status IN (?, ?)",
            (DeploymentStatus.FAILED, _INTERRUPTED, now,
             DeploymentStatus.PENDING, DeploymentStatus.BUILDING),
        )
        if cursor.rowcount > 0:
            logger.info("Recovered %d interrupted deployment(s)", cursor.rowcount)
        cursor = await self._conn.execute(
            "UPDATE projects SET status = ?, updated_at = ? WHERE status IN (?, ?)",
            (ProjectStatus.FAILED, now, ProjectStatus.GENERATING, ProjectStatus.DEPLOYING),
        )
        if cursor.rowcount > 0:
            logger.info("Recovered %d interrupted project(s)", cursor.rowcount)
        await self._conn.commit()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call await db.init() first.")
        return self._conn

    @asynccontextmanager
    async def transaction(self):
        """Atomic read+write transaction. Rolls back on exception.

        BEGIN IMMEDIATE takes the write lock upfront. Re-entrant within the
        same asyncio task (inner calls are no-ops); other tasks wait on the lock.
        """
        current = asyncio.current_task()
        if self._in_transaction and self._tx_owner is current:
            yield self.conn
            return

        async with self._tx_lock:
            self._in_transaction = True
            self._tx_owner = current
            try:
                await self.conn.execute("BEGIN IMMEDIATE")
                try:
                    yield self.conn
                    await self.conn.commit()
                except BaseException:
                    await self.conn.rollback()
                    raise
            finally:
                self._in_transaction = False
                self._tx_owner = None

    async def execute_write(self, sql: str, params: tuple | list = ()) -> aiosqlite.Cursor:
        """Execute a write query and commit.

        Inside a transaction() block, participates in the outer transaction.
        """
        cursor = await self.conn.execute(sql, params)
        if not self._in_transaction:
            await self.conn.commit()
        return cursor

    async def fetchone(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchall()

    async def close(self):
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
