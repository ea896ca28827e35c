"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Database operations (SQLite)
- Logging (Loguru)
- Periodic asyncio tasks

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

from .config import (
    Config,
    ensure_directories,
    get_config_dir,
    get_config_path,
    get_data_dir,
    load_config,
)
from .database import get_database_path, get_db_connection, init_database
from .exceptions import (
    AuthError,
    ListenLensError,
    NetworkError,
    RateLimitedError,
    SessionExpiredError,
    StorageError,
    StorageQuotaExceededError,
    UnauthorizedError,
)
from .output import log, setup_loguru
from .tasks import PeriodicTask

__all__ = [
    "Config",
    "ensure_directories",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "load_config",
    "get_database_path",
    "get_db_connection",
    "init_database",
    "AuthError",
    "ListenLensError",
    "NetworkError",
    "RateLimitedError",
    "SessionExpiredError",
    "StorageError",
    "StorageQuotaExceededError",
    "UnauthorizedError",
    "log",
    "setup_loguru",
    "PeriodicTask",
]
