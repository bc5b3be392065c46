"""
DuckDB session store for execguard audit trails.

The command log is append-only. Appends are idempotent on the record id,
so a retried write never duplicates history. Concurrent processes share
the database file through per-operation connections (keep_open=False)
and wait briefly for each other's file lock.
"""

import json
import os
import secrets
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

import duckdb

from ..errors import SessionError
from ..utils.logger import debug, info, warning
from .models import Command, Session, SessionSummary

SESSION_ENV_VAR = "EXECGUARD_SESSION_ID"
DEFAULT_DATA_DIR = Path.home() / ".execguard"
LOCK_RETRY_INTERVAL = 0.05


def get_data_dir() -> Path:
    override = os.getenv("EXECGUARD_HOME")
    return Path(override).expanduser() if override else DEFAULT_DATA_DIR


def get_db_path() -> Path:
    """Get the path to the session database."""
    return get_data_dir() / "sessions.duckdb"


def new_session_id() -> str:
    return f"session-{int(time.time())}-{secrets.token_hex(4)}"


def _workspace_key(workspace: str) -> str:
    return str(Path(workspace).expanduser().resolve())


def _is_lock_conflict(exc: Exception) -> bool:
    return "lock" in str(exc).lower()


class SessionStore:
    """Manages sessions and their command logs in DuckDB.

    DuckDB lets one process hold the database file for writing at a time.
    Stores shared across processes should use keep_open=False, so the file
    lock is held only for the duration of each operation, and a
    lock_timeout to wait out other processes' operations.
    """

    def __init__(
        self,
        db_path: Optional[Path] = None,
        index_path: Optional[Path] = None,
        read_only: bool = False,
        keep_open: bool = True,
        lock_timeout: float = 0.0,
    ):
        """Initialize the store.

        Args:
            db_path: Database file, or ":memory:". Uses default if not provided.
            index_path: Workspace -> session index file. Defaults next to the database.
            read_only: Open without write access (no schema creation)
            keep_open: Hold the connection between operations
            lock_timeout: Seconds to retry while another process holds the file lock
        """
        self._db_path = str(db_path) if db_path else str(get_db_path())
        if index_path is not None:
            self._index_path = Path(index_path)
        elif self._db_path == ":memory:":
            self._index_path = None
        else:
            self._index_path = Path(self._db_path).parent / "session-index.json"
        self._read_only = read_only
        # An in-memory database does not survive a close
        self._keep_open = keep_open or self._db_path == ":memory:"
        self._lock_timeout = lock_timeout
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._memory_index: Dict[str, Any] = {}

    @property
    def db_path(self) -> str:
        return self._db_path

    def connect(self) -> duckdb.DuckDBPyConnection:
        """Get or create the database connection."""
        if self._conn is None:
            if self._db_path != ":memory:" and not self._read_only:
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = self._open_connection()
            if not self._read_only:
                self._create_schema()
        return self._conn

    def _open_connection(self) -> duckdb.DuckDBPyConnection:
        deadline = time.monotonic() + self._lock_timeout
        while True:
            try:
                return duckdb.connect(self._db_path, read_only=self._read_only)
            except duckdb.IOException as e:
                if not _is_lock_conflict(e) or time.monotonic() >= deadline:
                    raise SessionError(f"Cannot open session store {self._db_path}: {e}") from e
                debug(f"Session store locked by another process, retrying: {self._db_path}")
                time.sleep(LOCK_RETRY_INTERVAL)
            except duckdb.Error as e:
                raise SessionError(f"Cannot open session store {self._db_path}: {e}") from e

    @contextmanager
    def _connection(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Connection for one operation, released afterwards unless held open"""
        held = self._keep_open or self._conn is not None
        conn = self.connect()
        try:
            yield conn
        finally:
            if not held:
                self.close()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SessionStore":
        self.connect()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _create_schema(self) -> None:
        conn = self._conn
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sessions (
                id VARCHAR PRIMARY KEY,
                workspace VARCHAR,
                agent VARCHAR,
                started_at TIMESTAMP,
                ended_at TIMESTAMP
            )
        """)
        conn.execute("CREATE SEQUENCE IF NOT EXISTS command_seq START 1")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS commands (
                id VARCHAR PRIMARY KEY,
                seq BIGINT DEFAULT nextval('command_seq'),
                session_id VARCHAR NOT NULL,
                timestamp TIMESTAMP NOT NULL,
                command VARCHAR NOT NULL,
                args VARCHAR,
                exit_code INTEGER,
                duration_ms BIGINT DEFAULT 0,
                risk_level VARCHAR,
                approved BOOLEAN DEFAULT FALSE,
                findings VARCHAR,
                metadata VARCHAR
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_commands_session ON commands(session_id, timestamp)"
        )

    # === Sessions ===

    def start_session(
        self,
        workspace: str,
        agent: str = "",
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Session:
        """Create a session and make it current for its workspace"""
        session = Session(
            id=session_id or new_session_id(),
            workspace=_workspace_key(workspace),
            agent=agent,
            started_at=now or datetime.now(),
        )
        with self._connection() as conn:
            try:
                conn.execute(
                    "INSERT INTO sessions (id, workspace, agent, started_at) VALUES (?, ?, ?, ?)",
                    [session.id, session.workspace, session.agent, session.started_at],
                )
            except duckdb.ConstraintException as e:
                raise SessionError(f"Session already exists: {session.id}") from e
        self._write_index(session.workspace, session.id)
        info(f"Started session {session.id} for {session.workspace}")
        return session

    def end_session(self, session_id: str, now: Optional[datetime] = None) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise SessionError(f"Unknown session: {session_id}")
        session.ended_at = now or datetime.now()
        with self._connection() as conn:
            conn.execute(
                "UPDATE sessions SET ended_at = ? WHERE id = ?", [session.ended_at, session_id]
            )
        index = self._read_index()
        if index.get(session.workspace) == session_id:
            del index[session.workspace]
            self._save_index(index)
        info(f"Ended session {session_id}")
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT id, workspace, agent, started_at, ended_at FROM sessions WHERE id = ?",
                [session_id],
            ).fetchone()
        return Session(*row) if row else None

    def list_sessions(self, limit: int = 50) -> List[Session]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, workspace, agent, started_at, ended_at
                FROM sessions
                ORDER BY started_at DESC
                LIMIT ?
                """,
                [limit],
            ).fetchall()
        return [Session(*row) for row in rows]

    # === Command log ===

    def append_command(self, session_id: str, command: Command) -> bool:
        """Append an audit record; returns False when the id was already stored"""
        with self._connection() as conn:
            before = conn.execute(
                "SELECT COUNT(*) FROM commands WHERE id = ?", [command.id]
            ).fetchone()[0]
            if before:
                debug(f"Command {command.id} already recorded, skipping")
                return False
            conn.execute(
                """
                INSERT INTO commands (id, session_id, timestamp, command, args, exit_code,
                                      duration_ms, risk_level, approved, findings, metadata)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO NOTHING
                """,
                [
                    command.id,
                    session_id,
                    command.timestamp,
                    command.command,
                    json.dumps(list(command.args)),
                    command.exit_code,
                    command.duration_ms,
                    command.risk_level,
                    command.approved,
                    json.dumps(list(command.findings)),
                    json.dumps(command.metadata, default=str),
                ],
            )
        return True

    def load_history(self, session_id: str) -> List[Command]:
        """Persisted commands for a session, oldest first"""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT id, timestamp, command, args, exit_code, duration_ms,
                       risk_level, approved, findings, metadata
                FROM commands
                WHERE session_id = ?
                ORDER BY timestamp, seq
                """,
                [session_id],
            ).fetchall()
        return [self._row_to_command(row) for row in rows]

    @staticmethod
    def _row_to_command(row) -> Command:
        (cid, ts, command, args, exit_code, duration_ms, risk, approved, findings, metadata) = row
        return Command(
            id=cid,
            timestamp=ts,
            command=command,
            args=json.loads(args or "[]"),
            exit_code=exit_code,
            duration_ms=duration_ms or 0,
            risk_level=risk or "low",
            approved=bool(approved),
            findings=json.loads(findings or "[]"),
            metadata=json.loads(metadata or "{}"),
        )

    def summarize(self, session_id: str) -> SessionSummary:
        return SessionSummary.from_commands(session_id, self.load_history(session_id))

    # === Current session ===

    def current_session_id(
        self, workspace: str, env: Optional[Mapping[str, str]] = None
    ) -> Optional[str]:
        """Session for a workspace: env var if it belongs here, else the index"""
        env = os.environ if env is None else env
        key = _workspace_key(workspace)

        from_env = env.get(SESSION_ENV_VAR)
        if from_env:
            session = self.get_session(from_env)
            if session is not None and session.workspace == key and session.is_active:
                return from_env
            warning(f"{SESSION_ENV_VAR}={from_env} does not belong to {key}, ignoring")

        indexed = self._read_index().get(key)
        if indexed:
            session = self.get_session(indexed)
            if session is not None and session.is_active:
                return indexed
        return None

    def _read_index(self) -> Dict[str, Any]:
        if self._index_path is None:
            return dict(self._memory_index)
        if not self._index_path.exists():
            return {}
        try:
            data = json.loads(self._index_path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            warning(f"Session index unreadable at {self._index_path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save_index(self, index: Dict[str, Any]) -> None:
        if self._index_path is None:
            self._memory_index = dict(index)
            return
        self._index_path.parent.mkdir(parents=True, exist_ok=True)
        self._index_path.write_text(json.dumps(index, indent=2), encoding="utf-8")

    def _write_index(self, workspace: str, session_id: str) -> None:
        index = self._read_index()
        index[workspace] = session_id
        self._save_index(index)
