"""Environment-driven settings for canvas-history.

Example:
    >>> from canvas_history.config import EnvVar, get_db_path, get_environment
    >>> get_environment(EnvVar.MAX_HISTORY_SIZE)  # int, default 1000
    >>> get_db_path()  # SQLite history database

Categories:
    storage: CANVAS_HISTORY_DB_PATH
    retention: CANVAS_HISTORY_MAX_SIZE
    logging: CANVAS_HISTORY_LOG_LEVEL
"""

from .lib import (
    DEFAULT_DB_PATH,
    EnvConfig,
    EnvVar,
    describe_environment,
    get_db_path,
    get_environment,
    get_environment_info,
    get_log_level,
    get_max_history_size,
    list_environment_variables,
)

__all__ = [
    "DEFAULT_DB_PATH",
    "EnvConfig",
    "EnvVar",
    "get_environment",
    "get_environment_info",
    "list_environment_variables",
    "describe_environment",
    "get_db_path",
    "get_max_history_size",
    "get_log_level",
]
