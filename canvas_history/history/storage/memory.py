"""In-memory storage backend, mainly for tests and ephemeral sessions."""

from ..errors import ImportDecodeError, PersistenceError
from ..models import HistoryState
from ..serialization import export_history, import_history


class InMemoryStorage:
    """Keeps the last saved state as an export document.

    Going through the export codec means a loaded state never shares
    mutable records with the engine that saved it.
    """

    def __init__(self) -> None:
        self.document: bytes | None = None
        self.save_count = 0
        self._initialized = False

    def initialize(self) -> None:
        self._initialized = True

    def close(self) -> None:
        self._initialized = False

    def save(self, state: HistoryState) -> None:
        if not self._initialized:
            raise PersistenceError("Storage not initialized. Call initialize() first.")
        self.document = export_history(state)
        self.save_count += 1

    def load(self) -> HistoryState | None:
        if not self._initialized:
            raise PersistenceError("Storage not initialized. Call initialize() first.")
        if self.document is None:
            return None
        try:
            return import_history(self.document)
        except ImportDecodeError as e:
            raise PersistenceError(f"Stored history is unreadable: {e}") from e


__all__ = ["InMemoryStorage"]
