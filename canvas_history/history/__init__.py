"""Versioned design history for canvas-history.

This module records design snapshots in a directed acyclic graph and
provides undo/redo, navigation, branching, comparison, retention and
persistence on top of it.

Example:
    >>> from canvas_history.history import HistoryEngine
    >>> from canvas_history.snapshot import CanvasElement, DesignSnapshot
    >>> engine = HistoryEngine()
    >>> a = engine.create_snapshot(DesignSnapshot.create())
    >>> b = engine.create_snapshot(
    ...     DesignSnapshot.create(elements=[CanvasElement(id="logo")])
    ... )
    >>> engine.undo() == engine.get_node(a).snapshot
    True
    >>> [c.element_id for c in engine.compare(a, b).added]
    ['logo']

Features:
    - Snapshot graph with mutual parent/child edges and no cycles
    - Linear undo/redo over the path from a root to the current node
    - Named branches with color tags
    - Element-level and viewport comparison
    - Age-ordered retention with reference repair
    - JSON export/import and SQLite persistence

Configuration:
    Engine limits can be configured via HistoryConfig:
    - max_history_size: Maximum node count (default: 1000)
    - id_attempts: Id collisions tolerated per snapshot (default: 3)
"""

from .diff import (
    Comparison,
    ElementChange,
    ElementChangeType,
    ViewportChange,
    compare_snapshots,
)
from .errors import (
    BranchNotFoundError,
    CannotRedoError,
    CannotUndoError,
    DuplicateIdError,
    HistoryError,
    ImportDecodeError,
    IntegrityError,
    NodeNotFoundError,
    PersistenceError,
)
from .lib import HistoryEngine, HistoryListener, open_history_engine
from .models import (
    BRANCH_COLORS,
    Branch,
    BranchId,
    EvictionResult,
    HistoryConfig,
    HistoryEvent,
    HistoryEventType,
    HistoryNode,
    HistoryState,
    HistoryStats,
    NodeId,
)
from .retention import RetentionPolicy
from .serialization import FORMAT_VERSION, export_history, import_history
from .storage import HistoryStorage, InMemoryStorage, SQLiteStorage

__all__ = [
    # Engine
    "HistoryEngine",
    "HistoryListener",
    "open_history_engine",
    # Models
    "NodeId",
    "BranchId",
    "BRANCH_COLORS",
    "HistoryNode",
    "Branch",
    "HistoryState",
    "HistoryConfig",
    "HistoryStats",
    "EvictionResult",
    "HistoryEvent",
    "HistoryEventType",
    # Comparison
    "Comparison",
    "ElementChange",
    "ElementChangeType",
    "ViewportChange",
    "compare_snapshots",
    # Retention
    "RetentionPolicy",
    # Serialization
    "FORMAT_VERSION",
    "export_history",
    "import_history",
    # Storage
    "HistoryStorage",
    "InMemoryStorage",
    "SQLiteStorage",
    # Errors
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
