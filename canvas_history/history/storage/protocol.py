"""Storage protocol for history persistence.

Defines the interface that all storage backends must implement.
"""

from typing import Protocol

from ..models import HistoryState


class HistoryStorage(Protocol):
    """Protocol defining the storage interface for the history engine.

    Backends persist whole states: every save replaces what was stored
    before. Failures are reported as PersistenceError.
    """

    def initialize(self) -> None:
        """Initialize storage (create tables, directories, etc.)."""
        ...

    def close(self) -> None:
        """Close storage connections and clean up resources."""
        ...

    def save(self, state: HistoryState) -> None:
        """Persist a state, replacing the stored one.

        Args:
            state: Engine state to store.

        Raises:
            PersistenceError: If the state could not be written.
        """
        ...

    def load(self) -> HistoryState | None:
        """Load the stored state.

        Returns:
            The stored state, or None if nothing has been saved yet.

        Raises:
            PersistenceError: If stored data is unreadable or inconsistent.
        """
        ...


__all__ = ["HistoryStorage"]
