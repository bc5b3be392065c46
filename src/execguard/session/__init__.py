"""
Session Store - Audit trail of guarded commands

Provides:
- Session, Command, SessionSummary models
- SessionStore: DuckDB-backed append-only command log
"""

from .models import Command, Session, SessionSummary
from .store import SESSION_ENV_VAR, SessionStore, get_db_path, new_session_id

__all__ = [
    "Command",
    "Session",
    "SessionSummary",
    "SessionStore",
    "SESSION_ENV_VAR",
    "get_db_path",
    "new_session_id",
]
