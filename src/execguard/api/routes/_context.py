"""
Route Context - Shared dependencies for API routes.

The server configures how a request opens the session store, and a lock
that serializes DuckDB access across request threads.
"""

import threading
from typing import Callable, ContextManager, Optional

from ...session import SessionStore

StoreOpener = Callable[[], ContextManager[SessionStore]]


class RouteContext:
    """Singleton holding shared dependencies for routes."""

    _instance: Optional["RouteContext"] = None
    _lock = threading.Lock()

    def __init__(self):
        self._open_store: Optional[StoreOpener] = None
        self._db_lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "RouteContext":
        """Get or create the singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def configure(self, open_store: StoreOpener) -> None:
        self._open_store = open_store

    def open_store(self) -> ContextManager[SessionStore]:
        if self._open_store is None:
            raise RuntimeError("RouteContext not configured - call configure() first")
        return self._open_store()

    @property
    def db_lock(self) -> threading.Lock:
        return self._db_lock


def open_store() -> ContextManager[SessionStore]:
    """Session store scoped to a with-block; released when the block exits."""
    return RouteContext.get_instance().open_store()


def get_db_lock() -> threading.Lock:
    return RouteContext.get_instance().db_lock
