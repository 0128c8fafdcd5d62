"""
Runtime configuration.

Everything is read from environment variables with command-line flags
taking precedence where the entry points expose one.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

BOARD_DIR = ".laneorder"
DB_NAME = "board.db"
DEFAULT_BUSY_TIMEOUT = 5.0
DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def get_env_float(name: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_env_str(name: str, default: str) -> str:
    """Get string from environment variable."""
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.environ.get(name, "").lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def busy_timeout() -> float:
    """Seconds a writer waits for a competing transaction before giving up."""
    return get_env_float("LANEORDER_BUSY_TIMEOUT", DEFAULT_BUSY_TIMEOUT)


def no_color() -> bool:
    return get_env_bool("LANEORDER_NO_COLOR") or get_env_bool("NO_COLOR")


def find_board_dir(override_dir: Optional[str] = None) -> Path:
    """Find the .laneorder directory, with optional override."""
    # Priority 1: Explicit override
    if override_dir:
        path = Path(override_dir)
        if path.name != BOARD_DIR and (path / BOARD_DIR).exists():
            return path / BOARD_DIR
        return path

    # Priority 2: Environment variable
    env_dir = os.environ.get("LANEORDER_DIR")
    if env_dir:
        path = Path(env_dir)
        if path.name != BOARD_DIR and (path / BOARD_DIR).exists():
            return path / BOARD_DIR
        return path

    # Priority 3: Walk up from current directory
    current = Path.cwd()
    while current != current.parent:
        candidate = current / BOARD_DIR
        if candidate.exists():
            return candidate
        current = current.parent

    return Path.cwd() / BOARD_DIR


def find_db_path(override_dir: Optional[str] = None) -> Path:
    """Resolve the board database: an explicit directory, then LANEORDER_DB_PATH, then discovery."""
    db_path = os.environ.get("LANEORDER_DB_PATH")
    if db_path and not override_dir:
        return Path(db_path)
    return find_board_dir(override_dir) / DB_NAME


def configure_logging(level: Optional[str] = None) -> None:
    """Send log records to stderr; stdout belongs to command output and the stdio transport."""
    name = (level or get_env_str("LANEORDER_LOG_LEVEL", DEFAULT_LOG_LEVEL)).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.WARNING),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )
