"""
Sessions Routes - Session listing, command log and summary endpoints.
"""

from flask import Blueprint, jsonify, request

from ...utils.logger import error
from ..config import DEFAULT_SESSION_LIMIT, MAX_SESSION_LIMIT
from ._context import get_db_lock, open_store

sessions_bp = Blueprint("sessions", __name__)


def _not_found(session_id: str):
    return jsonify({"success": False, "error": f"Unknown session: {session_id}"}), 404


@sessions_bp.route("/api/sessions", methods=["GET"])
def list_sessions():
    """List recent sessions, newest first."""
    try:
        limit = request.args.get("limit", DEFAULT_SESSION_LIMIT, type=int)
        limit = max(1, min(limit, MAX_SESSION_LIMIT))
        with get_db_lock(), open_store() as store:
            sessions = store.list_sessions(limit=limit)
        return jsonify({"success": True, "data": [s.to_dict() for s in sessions]})
    except Exception as e:
        error(f"[API] Error listing sessions: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@sessions_bp.route("/api/sessions/<session_id>", methods=["GET"])
def get_session(session_id: str):
    """Session details with its command log."""
    try:
        with get_db_lock(), open_store() as store:
            session = store.get_session(session_id)
            if session is None:
                return _not_found(session_id)
            commands = store.load_history(session_id)
        data = session.to_dict()
        data["commands"] = [c.to_dict() for c in commands]
        return jsonify({"success": True, "data": data})
    except Exception as e:
        error(f"[API] Error getting session {session_id}: {e}")
        return jsonify({"success": False, "error": str(e)}), 500


@sessions_bp.route("/api/sessions/<session_id>/summary", methods=["GET"])
def get_session_summary(session_id: str):
    """Risk score, violations and per-risk counts for a session."""
    try:
        with get_db_lock(), open_store() as store:
            if store.get_session(session_id) is None:
                return _not_found(session_id)
            summary = store.summarize(session_id)
        return jsonify({"success": True, "data": summary.to_dict()})
    except Exception as e:
        error(f"[API] Error getting summary for {session_id}: {e}")
        return jsonify({"success": False, "error": str(e)}), 500
