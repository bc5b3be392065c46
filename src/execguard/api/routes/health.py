"""
Health Check Routes.
"""

from datetime import datetime

from flask import Blueprint, jsonify

from ... import __version__

health_bp = Blueprint("health", __name__)


@health_bp.route("/api/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify(
        {
            "success": True,
            "data": {
                "status": "ok",
                "service": "execguard-api",
                "version": __version__,
                "timestamp": datetime.now().isoformat(),
            },
        }
    )
