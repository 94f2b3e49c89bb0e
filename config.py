"""
Centralized configuration for the dashboard sync client
"""

import os
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv

load_dotenv()

# Server location
API_BASE_URL = os.getenv("DASHBOARD_API_URL", "http://localhost:8000")

# Paths appended to the base URL
API_ENDPOINTS = {
    "snapshot": "/api/dashboard",
    "push": "/ws"
}

# Headers sent with every request and on the websocket handshake
API_HEADERS = {
    "Accept": "application/json"
}

# Snapshot (pull) settings
SNAPSHOT_CONFIG = {
    "timeout": 10.0,  # seconds for the whole request
    "fetch_on_start": True
}

# Push channel settings
PUSH_CONFIG = {
    "open_timeout": 10.0,  # seconds to wait for the handshake
    "ping_interval": 0     # 0 disables websocket pings
}

# Reconnection policy
RECONNECT_CONFIG = {
    "strategy": os.getenv("RECONNECT_STRATEGY", "fixed"),  # "fixed" or "exponential"

    # Fixed strategy (reference behavior)
    "connect_failure_delay": 5.0,  # after a failed connect
    "disconnect_delay": 3.0,       # after losing an open connection

    # Exponential strategy
    "base_delay": 1.0,
    "multiplier": 2.0,
    "max_delay": 30.0,
    "jitter": 0.5,         # fraction of the delay added at random
    "max_attempts": None   # None retries forever
}

# Feed bounds
FEED_CONFIG = {
    "activity_limit": 20
}

# Optional periodic re-fetch, off by default
POLLING_CONFIG = {
    "enabled": os.getenv("POLLING_ENABLED", "false").lower() == "true",
    "interval_seconds": float(os.getenv("POLLING_INTERVAL", "30"))
}

# Logging settings
LOGGING_CONFIG = {
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "log_dir": os.getenv("LOG_DIR", "./logs"),
    "enable_file_logging": os.getenv("ENABLE_FILE_LOGGING", "true").lower() == "true",
    "enable_console_logging": os.getenv("ENABLE_CONSOLE_LOGGING", "true").lower() == "true",
    "json": os.getenv("LOG_FORMAT", "console").lower() == "json"
}

# Display settings for main.py
DISPLAY_CONFIG = {
    "colors": {
        "info": "\033[94m",
        "success": "\033[92m",
        "error": "\033[91m",
        "reset": "\033[0m"
    }
}

_PUSH_SCHEMES = {
    "http": "ws",
    "https": "wss",
    "ws": "ws",
    "wss": "wss"
}


def _join(base_url, path):
    return base_url.rstrip("/") + path


def get_snapshot_url(base_url=None):
    """Get the snapshot resource URL"""
    return _join(base_url or API_BASE_URL, API_ENDPOINTS["snapshot"])


def get_push_url(base_url=None):
    """
    Get the push channel URL

    The push channel lives on the same host as the snapshot resource, with
    the scheme swapped for its websocket counterpart (http -> ws, https -> wss).

    Args:
        base_url: Server base URL, defaults to API_BASE_URL

    Returns:
        Websocket URL for the push channel

    Raises:
        ValueError: If the base URL scheme has no websocket counterpart
    """
    parts = urlsplit(base_url or API_BASE_URL)
    scheme = _PUSH_SCHEMES.get(parts.scheme.lower())
    if scheme is None:
        raise ValueError(f"Unsupported scheme for push channel: {parts.scheme!r}")
    ws_base = urlunsplit((scheme, parts.netloc, parts.path, "", ""))
    return _join(ws_base, API_ENDPOINTS["push"])
