"""
Dashboard API Server - Flask server exposing session audit data.

Serves on localhost only. Requests are handled one at a time. Each
request opens its own read-only connection to the session database and
releases it before the response is sent, so guarded commands in other
processes can keep writing their audit records.
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from flask import Flask
from werkzeug.serving import make_server

from ..session import SessionStore, get_db_path
from ..utils.logger import info
from .config import API_HOST, API_PORT, STORE_LOCK_TIMEOUT
from .routes import health_bp, sessions_bp
from .routes._context import RouteContext


class DashboardAPIServer:
    """Flask server for the audit dashboard API."""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        host: str = API_HOST,
        port: int = API_PORT,
        db_path: Optional[Path] = None,
    ):
        """Initialize the API server.

        Args:
            store: Session store shared by every request (embedding, tests)
            host: Host to bind to (default: localhost only)
            port: Port to listen on
            db_path: Database opened read-only per request when no store is given
        """
        self._host = host
        self._port = port
        self._store = store
        self._db_path = Path(db_path) if db_path else get_db_path()
        self._app = Flask(__name__)
        self._server: Any = None
        self._thread: Optional[threading.Thread] = None

        RouteContext.get_instance().configure(open_store=self._open_store)
        self._app.register_blueprint(health_bp)
        self._app.register_blueprint(sessions_bp)

    @contextmanager
    def _open_store(self) -> Iterator[SessionStore]:
        """Store for one request."""
        if self._store is not None:
            yield self._store
            return
        if not self._db_path.exists():
            # Create the schema once so read-only opens succeed
            with SessionStore(self._db_path, lock_timeout=STORE_LOCK_TIMEOUT):
                pass
        store = SessionStore(self._db_path, read_only=True, lock_timeout=STORE_LOCK_TIMEOUT)
        try:
            yield store
        finally:
            store.close()

    @property
    def app(self) -> Flask:
        return self._app

    def _make_server(self):
        logging.getLogger("werkzeug").setLevel(logging.ERROR)
        return make_server(self._host, self._port, self._app, threaded=False)

    def serve_forever(self) -> None:
        """Serve in the calling thread until interrupted."""
        self._server = self._make_server()
        info(f"[API] Server started on {self.url}")
        try:
            self._server.serve_forever()
        finally:
            self._server.server_close()
            self._server = None
            info("[API] Server stopped")

    def start(self) -> None:
        """Start the API server in a background thread."""
        if self.is_running:
            return
        self._server = self._make_server()
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        info(f"[API] Server started on {self.url}")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the API server and release its socket."""
        server, thread = self._server, self._thread
        self._server = None
        self._thread = None
        if server is None:
            return
        server.shutdown()
        if thread is not None:
            thread.join(timeout)
        server.server_close()
        info("[API] Server stopped")

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
