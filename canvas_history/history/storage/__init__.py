"""Storage backends for history persistence.

Available backends:
- SQLiteStorage: File-based SQLite database (recommended for local use)
- InMemoryStorage: In-memory storage for testing
"""

from .memory import InMemoryStorage
from .protocol import HistoryStorage
from .sqlite import SQLiteStorage

__all__ = [
    "HistoryStorage",
    "InMemoryStorage",
    "SQLiteStorage",
]
