"""SQL storage for workflow state.

PHASEFLOW_DATABASE_URL selects the engine:
- postgres://... uses psycopg2 with a small threaded pool
- anything else (including unset) uses a SQLite file at PHASEFLOW_SQLITE_PATH

Statements are written once with %s placeholders; the SQLite path swaps
them for ?. There is a single table, workflow_states, holding one
serialized ExecutionContext per row.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)

DATABASE_URL = os.environ.get("PHASEFLOW_DATABASE_URL", "")

SQLITE_PATH = Path(
    os.environ.get("PHASEFLOW_SQLITE_PATH", str(Path(__file__).parent / "phaseflow.db"))
)

PG_POOL_MIN = 1
PG_POOL_MAX = 5

_initialized = False
_pg_pool = None

_SCHEMA = {
    "postgres": [
        """CREATE TABLE IF NOT EXISTS workflow_states (
            state_key VARCHAR(200) PRIMARY KEY,
            workflow_id VARCHAR(100) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'planned',
            state_data TEXT NOT NULL,
            expires_at DOUBLE PRECISION NOT NULL,
            updated_at VARCHAR(40)
        )""",
        "CREATE INDEX IF NOT EXISTS idx_workflow_states_expires ON workflow_states(expires_at)",
    ],
    "sqlite": [
        """CREATE TABLE IF NOT EXISTS workflow_states (
            state_key TEXT PRIMARY KEY,
            workflow_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'planned',
            state_data TEXT NOT NULL,
            expires_at REAL NOT NULL,
            updated_at TEXT
        )""",
        "CREATE INDEX IF NOT EXISTS idx_workflow_states_expires ON workflow_states(expires_at)",
    ],
}


def _dialect() -> str:
    return "postgres" if DATABASE_URL.startswith("postgres") else "sqlite"


def _pool():
    global _pg_pool
    if _pg_pool is None:
        import psycopg2.pool
        _pg_pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=PG_POOL_MIN,
            maxconn=PG_POOL_MAX,
            dsn=DATABASE_URL,
        )
        logger.info(f"PostgreSQL pool ready ({PG_POOL_MIN}-{PG_POOL_MAX} connections)")
    return _pg_pool


@contextmanager
def transaction() -> Iterator[Any]:
    """Yield a connection; commit on success, roll back on error.

    SQLite connections are opened per call (check_same_thread=False) and
    closed afterwards. Postgres connections go back to the pool.
    """
    if _dialect() == "postgres":
        pool = _pool()
        conn = pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            pool.putconn(conn)
        return

    conn = sqlite3.connect(str(SQLITE_PATH), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def _row_to_dict(cursor, row) -> dict[str, Any]:
    if isinstance(row, sqlite3.Row):
        return dict(row)
    return {desc[0]: value for desc, value in zip(cursor.description, row)}


def execute(sql: str, params: tuple = (), fetch: str = "none") -> Any:
    """Run one statement.

    fetch="one" returns a dict or None, fetch="all" a list of dicts, and
    fetch="none" the affected row count.
    """
    if _dialect() == "sqlite":
        sql = sql.replace("%s", "?")

    with transaction() as conn:
        cursor = conn.cursor()
        cursor.execute(sql, params)
        if fetch == "one":
            row: Optional[Any] = cursor.fetchone()
            return _row_to_dict(cursor, row) if row is not None else None
        if fetch == "all":
            return [_row_to_dict(cursor, row) for row in cursor.fetchall()]
        return cursor.rowcount


def init_db() -> None:
    """Create the workflow_states table once per process."""
    global _initialized
    if _initialized:
        return

    dialect = _dialect()
    with transaction() as conn:
        cursor = conn.cursor()
        for statement in _SCHEMA[dialect]:
            cursor.execute(statement)

    _initialized = True
    where = "PostgreSQL" if dialect == "postgres" else f"SQLite ({SQLITE_PATH})"
    logger.info(f"Workflow state database initialized: {where}")
