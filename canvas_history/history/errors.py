"""Exceptions raised by the history engine."""

from typing import Any


class HistoryError(Exception):
    """Base exception for history engine errors."""


class NodeNotFoundError(HistoryError):
    """Raised when a node id is not present in the graph.

    Attributes:
        node_id: The missing node id.
    """

    def __init__(self, node_id: Any, message: str | None = None):
        super().__init__(message or f"Node not found: {node_id}")
        self.node_id = node_id


class BranchNotFoundError(HistoryError):
    """Raised when a branch id is not registered.

    Attributes:
        branch_id: The missing branch id.
    """

    def __init__(self, branch_id: Any):
        super().__init__(f"Branch not found: {branch_id}")
        self.branch_id = branch_id


class CannotUndoError(HistoryError):
    """Raised when there is no state before the current node."""

    def __init__(self) -> None:
        super().__init__("Cannot undo: no previous state")


class CannotRedoError(HistoryError):
    """Raised when there is no forward state to restore."""

    def __init__(self) -> None:
        super().__init__("Cannot redo: no forward state")


class DuplicateIdError(HistoryError):
    """Raised when a node id is already taken.

    Attributes:
        node_id: The colliding id.
    """

    def __init__(self, node_id: Any):
        super().__init__(f"Duplicate node id: {node_id}")
        self.node_id = node_id


class IntegrityError(HistoryError):
    """Raised when an edge would break the graph invariants."""


class ImportDecodeError(HistoryError):
    """Raised when a serialized history document is malformed."""


class PersistenceError(HistoryError):
    """Raised by storage backends when saving or loading fails."""


__all__ = [
    "HistoryError",
    "NodeNotFoundError",
    "BranchNotFoundError",
    "CannotUndoError",
    "CannotRedoError",
    "DuplicateIdError",
    "IntegrityError",
    "ImportDecodeError",
    "PersistenceError",
]
