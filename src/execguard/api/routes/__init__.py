"""
API Routes Package - Flask Blueprints for the dashboard API.

- health: Health check endpoint
- sessions: Session listing, command log and summary
"""

from .health import health_bp
from .sessions import sessions_bp

__all__ = [
    "health_bp",
    "sessions_bp",
]
