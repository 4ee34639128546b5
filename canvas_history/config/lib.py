"""Environment-driven settings for canvas-history.

Every setting is declared once as an `EnvVar` member carrying its
variable name, default, type, bounds and a description. Values are read
through `get_environment()`, which applies an explicit override first,
then the process environment (after `.env` loading), then the default.

Example:
    >>> from canvas_history.config import EnvVar, get_environment
    >>> get_environment(EnvVar.MAX_HISTORY_SIZE)
    1000
    >>> get_environment(EnvVar.MAX_HISTORY_SIZE, override=50)
    50
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Used when CANVAS_HISTORY_DB_PATH is not set
DEFAULT_DB_PATH = Path("data/history/canvas_history.db")

_PARSERS: dict[type, Callable[[str], Any]] = {
    str: str.strip,
    int: lambda raw: int(raw.strip()),
    Path: lambda raw: Path(raw.strip()).expanduser(),
}


@dataclass(frozen=True)
class EnvConfig:
    """Declaration of one environment setting.

    Attributes:
        name: Variable name, e.g. "CANVAS_HISTORY_MAX_SIZE".
        default: Value used when the variable is unset or unparsable.
        var_type: Target type (str, int or Path).
        description: One-line help text shown by `canvas-history env`.
        category: Group the setting is listed under.
        minimum: Lower bound for numeric settings; smaller values are raised.
    """

    name: str
    default: Any
    var_type: type
    description: str = ""
    category: str = "general"
    minimum: int | None = None

    def parse(self, raw: str) -> Any:
        """Convert a raw environment string.

        Raises:
            ValueError: If the string cannot be converted.
        """
        value = _PARSERS[self.var_type](raw)
        if self.var_type is str and not value:
            raise ValueError(f"{self.name} is blank")
        return value

    def bound(self, value: Any) -> Any:
        if self.minimum is not None and value is not None and value < self.minimum:
            logger.warning(f"{self.name}={value} is below {self.minimum}; clamping")
            return self.minimum
        return value


class EnvVar(Enum):
    """Settings read from the environment.

    Categories:
        - storage: where history is persisted
        - retention: how much history is kept
        - logging: CLI log output
    """

    DB_PATH = EnvConfig(
        name="CANVAS_HISTORY_DB_PATH",
        default=None,  # resolved to DEFAULT_DB_PATH by get_db_path()
        var_type=Path,
        description="SQLite database file holding the persisted history",
        category="storage",
    )

    MAX_HISTORY_SIZE = EnvConfig(
        name="CANVAS_HISTORY_MAX_SIZE",
        default=1000,
        var_type=int,
        description="Maximum number of history nodes kept before eviction",
        category="retention",
        minimum=1,
    )

    LOG_LEVEL = EnvConfig(
        name="CANVAS_HISTORY_LOG_LEVEL",
        default="INFO",
        var_type=str,
        description="Log level for the CLI (DEBUG, INFO, WARNING, ERROR)",
        category="logging",
    )


def get_environment(env_var: EnvVar, override: Any = None) -> Any:
    """Resolve a setting.

    An override wins over the environment, which wins over the default.
    Unparsable environment values are logged and replaced by the default.

    Args:
        env_var: Setting to resolve.
        override: Value to use instead of the environment, if not None.

    Returns:
        The typed value, raised to the setting's minimum where one applies.
    """
    config = env_var.value
    if override is not None:
        return config.bound(override)

    raw = os.environ.get(config.name)
    if raw is None:
        return config.default
    try:
        value = config.parse(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {config.name}={raw!r}; using default")
        return config.default
    return config.bound(value)


def get_environment_info(env_var: EnvVar) -> EnvConfig:
    """Declaration behind a setting."""
    return env_var.value


def list_environment_variables(category: str | None = None) -> list[EnvVar]:
    """Settings in declaration order, optionally restricted to one category."""
    return [
        var for var in EnvVar if category is None or var.value.category == category
    ]


def describe_environment(category: str | None = None) -> list[dict[str, Any]]:
    """Resolved settings with their metadata, for display.

    Returns:
        One dict per setting with name, value, default, is_set,
        description and category.
    """
    return [
        {
            "name": var.value.name,
            "value": get_environment(var),
            "default": var.value.default,
            "is_set": var.value.name in os.environ,
            "description": var.value.description,
            "category": var.value.category,
        }
        for var in list_environment_variables(category)
    ]


def get_db_path(override: Path | str | None = None) -> Path:
    """History database path: override, CANVAS_HISTORY_DB_PATH, then default."""
    if override is not None:
        return Path(override)
    return get_environment(EnvVar.DB_PATH) or DEFAULT_DB_PATH


def get_max_history_size(override: int | None = None) -> int:
    """Retention bound, never below one node."""
    return get_environment(EnvVar.MAX_HISTORY_SIZE, override=override)


def get_log_level(override: str | None = None) -> str:
    """Log level name, upper-cased."""
    return get_environment(EnvVar.LOG_LEVEL, override=override).upper()


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
