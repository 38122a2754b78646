# env vars + constants
import os
from typing import List

from pydantic import BaseModel, Field

DEFAULT_ENDPOINTS = [
    "ws://localhost:5000/voting-app",
    "ws://localhost:5000/modules/voting-app",
    "ws://localhost:5000/api/modules/voting-app",
    "ws://localhost:5000/api/voting-app",
    # older local setups still listen on 3000
    "ws://localhost:3000/voting-app",
    "ws://localhost:3000/modules/voting-app",
]


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


PORT = int(os.getenv("PORT", "8000"))
ENDPOINTS = [
    e.strip() for e in os.getenv("POLLSYNC_ENDPOINTS", "").split(",") if e.strip()
] or list(DEFAULT_ENDPOINTS)

CONNECT_TIMEOUT = float(os.getenv("POLLSYNC_CONNECT_TIMEOUT", "3.0"))
MAX_RECONNECT_ATTEMPTS = int(os.getenv("POLLSYNC_MAX_RECONNECT_ATTEMPTS", "5"))
RECONNECT_DELAY = float(os.getenv("POLLSYNC_RECONNECT_DELAY", "1.0"))
ALLOW_FALLBACK = _flag("POLLSYNC_ALLOW_FALLBACK", "true")
FORCE_SIMULATION = _flag("POLLSYNC_FORCE_SIMULATION", "false")
DATA_DIR = os.getenv("POLLSYNC_DATA_DIR", "./data")
CHANNEL = os.getenv("POLLSYNC_CHANNEL", "voting_app_channel")
BROADCAST_INTERVAL = float(os.getenv("POLLSYNC_BROADCAST_INTERVAL", "0.25"))
STATE_KEY = "voting_app_state"
LOG_LEVEL = os.getenv("POLLSYNC_LOG_LEVEL", "INFO")


class SyncConfig(BaseModel):
    """
    Settings for one client instance. Defaults come from the environment,
    tests build their own.
    """
    endpoints: List[str] = Field(default_factory=lambda: list(ENDPOINTS))
    connect_timeout: float = CONNECT_TIMEOUT
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS
    reconnect_delay: float = RECONNECT_DELAY
    allow_fallback: bool = ALLOW_FALLBACK
    force_simulation: bool = FORCE_SIMULATION
    data_dir: str = DATA_DIR
    channel: str = CHANNEL
    broadcast_interval: float = BROADCAST_INTERVAL
    state_key: str = STATE_KEY
