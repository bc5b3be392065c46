"""
API Configuration - Dashboard server defaults.
"""

# Network configuration (localhost only)
API_HOST = "127.0.0.1"
API_PORT = 19880

# Paging defaults for list endpoints
DEFAULT_SESSION_LIMIT = 50
MAX_SESSION_LIMIT = 500

# Seconds a request waits for a writer to release the database file
STORE_LOCK_TIMEOUT = 2.0


def get_base_url(host: str = API_HOST, port: int = API_PORT) -> str:
    """Get the base URL for API requests."""
    return f"http://{host}:{port}"
