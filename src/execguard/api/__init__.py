"""
Dashboard API - read-only HTTP access to session audit data.
"""

from .config import API_HOST, API_PORT
from .server import DashboardAPIServer

__all__ = ["API_HOST", "API_PORT", "DashboardAPIServer"]
