"""Persistence for execution contexts, keyed by workflow id.

WorkflowStateStore wraps a key/value backend with expiry:
- InMemoryStateBackend: thread-safe dict, entries carry expires_at
- SqlStateBackend: workflow_states table via executor/db.py

Keys are "workflow_state:<workflow_id>". Store methods never raise:
backend errors are logged and reported as absence, False or 0.
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from src.executor import db
from src.executor.schemas import ExecutionContext
from src.orchestrator.schemas import utc_now

logger = logging.getLogger(__name__)

STATE_BACKEND = os.environ.get("PHASEFLOW_STATE_BACKEND", "memory")
STATE_TTL_SECONDS = int(os.environ.get("PHASEFLOW_STATE_TTL_SECONDS", str(24 * 60 * 60)))

KEY_PREFIX = "workflow_state:"

Clock = Callable[[], float]


def state_key(workflow_id: str) -> str:
    return f"{KEY_PREFIX}{workflow_id}"


class StateBackend(ABC):
    """Key/value storage with per-entry expiry."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: int, workflow_id: str = "", status: str = "") -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def clear_expired(self) -> int:
        """Drop expired entries and return how many were removed."""


class InMemoryStateBackend(StateBackend):
    def __init__(self, clock: Clock = time.time):
        self._entries: dict[str, dict] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() >= entry["expires_at"]:
                del self._entries[key]
                return None
            return entry["value"]

    def set(self, key: str, value: str, ttl_seconds: int, workflow_id: str = "", status: str = "") -> None:
        with self._lock:
            self._entries[key] = {
                "value": value,
                "expires_at": self._clock() + ttl_seconds,
            }

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now >= e["expires_at"]]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def stats(self) -> dict:
        with self._lock:
            now = self._clock()
            active = sum(1 for e in self._entries.values() if now < e["expires_at"])
            return {
                "total_keys": len(self._entries),
                "active_keys": active,
                "expired_keys": len(self._entries) - active,
            }


class SqlStateBackend(StateBackend):
    """SQLite or PostgreSQL, whichever executor/db.py is configured for."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        db.init_db()

    def get(self, key: str) -> Optional[str]:
        row = db.execute(
            "SELECT state_data, expires_at FROM workflow_states WHERE state_key = %s",
            (key,),
            fetch="one",
        )
        if row is None:
            return None
        if self._clock() >= float(row["expires_at"]):
            self.delete(key)
            return None
        return row["state_data"]

    def set(self, key: str, value: str, ttl_seconds: int, workflow_id: str = "", status: str = "") -> None:
        db.execute(
            """INSERT INTO workflow_states
               (state_key, workflow_id, status, state_data, expires_at, updated_at)
               VALUES (%s, %s, %s, %s, %s, %s)
               ON CONFLICT (state_key) DO UPDATE SET
                   workflow_id = excluded.workflow_id,
                   status = excluded.status,
                   state_data = excluded.state_data,
                   expires_at = excluded.expires_at,
                   updated_at = excluded.updated_at""",
            (key, workflow_id, status, value, self._clock() + ttl_seconds, utc_now()),
        )

    def delete(self, key: str) -> bool:
        count = db.execute("DELETE FROM workflow_states WHERE state_key = %s", (key,))
        return bool(count)

    def clear_expired(self) -> int:
        count = db.execute(
            "DELETE FROM workflow_states WHERE expires_at <= %s",
            (self._clock(),),
        )
        if count:
            logger.info(f"Purged {count} expired workflow states")
        return count or 0


class WorkflowStateStore:
    """Load and store ExecutionContexts with a TTL."""

    def __init__(self, backend: Optional[StateBackend] = None, ttl_seconds: int = STATE_TTL_SECONDS):
        self.backend = backend or InMemoryStateBackend()
        self.ttl_seconds = ttl_seconds

    def load(self, workflow_id: str) -> Optional[ExecutionContext]:
        try:
            raw = self.backend.get(state_key(workflow_id))
        except Exception as e:
            logger.warning(f"Failed to load workflow state {workflow_id}: {e}")
            return None
        if raw is None:
            return None

        try:
            return ExecutionContext.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable workflow state {workflow_id}: {e}")
            return None

    def store(self, context: ExecutionContext) -> bool:
        context.updated_at = utc_now()
        try:
            self.backend.set(
                state_key(context.workflow_id),
                context.model_dump_json(),
                self.ttl_seconds,
                workflow_id=context.workflow_id,
                status=context.status.value,
            )
        except Exception as e:
            logger.warning(f"Failed to store workflow state {context.workflow_id}: {e}")
            return False
        return True

    def delete(self, workflow_id: str) -> bool:
        try:
            return self.backend.delete(state_key(workflow_id))
        except Exception as e:
            logger.warning(f"Failed to delete workflow state {workflow_id}: {e}")
            return False

    def purge_expired(self) -> int:
        try:
            return self.backend.clear_expired()
        except Exception as e:
            logger.warning(f"Failed to purge expired workflow states: {e}")
            return 0


def create_state_store(backend_name: Optional[str] = None) -> WorkflowStateStore:
    """Build a store from PHASEFLOW_STATE_BACKEND ("memory" or "sql")."""
    name = (backend_name or STATE_BACKEND).lower()
    if name == "sql":
        backend: StateBackend = SqlStateBackend()
    elif name == "memory":
        backend = InMemoryStateBackend()
    else:
        raise ValueError(f"Unknown state backend '{name}'. Use 'memory' or 'sql'.")
    logger.info(f"Workflow state backend: {name} (ttl {STATE_TTL_SECONDS}s)")
    return WorkflowStateStore(backend)
