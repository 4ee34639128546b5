"""History Engine for canvas-history.

Records design snapshots in a directed acyclic graph and provides
linear undo/redo, navigation to any node, named branches, structural
comparison, bounded retention and persistence.
"""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from canvas_history.config import get_db_path, get_max_history_size
from canvas_history.snapshot import DesignSnapshot, SnapshotSource

from . import serialization
from .branches import BranchRegistry
from .diff import Comparison, compare_snapshots
from .errors import DuplicateIdError, PersistenceError
from .models import (
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
    new_node_id,
)
from .navigation import NavigationStacks, find_path, path_from_root
from .retention import RetentionPolicy
from .storage import SQLiteStorage
from .storage.protocol import HistoryStorage
from .store import NodeStore

logger = logging.getLogger(__name__)

HistoryListener = Callable[[HistoryEvent], None]


class HistoryEngine:
    """Versioned history of design snapshots.

    Provides a high-level interface for:
    - Recording snapshots (each new node is a child of the current node)
    - Undo/redo along the path from a root to the current node
    - Jumping to any recorded node
    - Named branches with their own node sequences
    - Comparing any two nodes
    - Bounded retention (oldest nodes are evicted first)
    - Export/import and best-effort persistence

    Example:
        >>> engine = HistoryEngine()
        >>> first = engine.create_snapshot(DesignSnapshot.create())
        >>> second = engine.create_snapshot(DesignSnapshot.create(elements=[...]))
        >>> engine.undo()  # back to the first snapshot
        >>> engine.create_branch("alt")
        >>> engine.compare(first, second).has_changes

    Args:
        storage: Storage backend. If None and db_path is given, creates
            SQLiteStorage; if both are None the engine is not persisted.
        config: Engine configuration. If None, uses defaults.
        db_path: Path to database file (only used if storage is None).
        autoload: Whether to restore the stored state on construction.
        id_factory: Callable producing new node ids.
    """

    def __init__(
        self,
        storage: HistoryStorage | None = None,
        config: HistoryConfig | None = None,
        db_path: Path | str | None = None,
        autoload: bool = True,
        id_factory: Callable[[], NodeId] = new_node_id,
    ):
        self._config = config or HistoryConfig()
        self._id_factory = id_factory

        self._store = NodeStore()
        self._branches = BranchRegistry()
        self._stacks = NavigationStacks()
        self._retention = RetentionPolicy(self._config.max_history_size)
        self._listeners: list[HistoryListener] = []
        self.last_persistence_error: PersistenceError | None = None

        if storage is None and db_path is not None:
            storage = SQLiteStorage(db_path)
        self._storage = storage

        if self._storage is not None:
            try:
                self._storage.initialize()
            except PersistenceError as e:
                self._persistence_failed("initialize storage", e)
            else:
                if autoload:
                    self._load()

    @property
    def config(self) -> HistoryConfig:
        """Get engine configuration."""
        return self._config

    def close(self) -> None:
        """Close storage connections."""
        if self._storage is not None:
            self._storage.close()

    def __enter__(self) -> "HistoryEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Snapshots and Navigation
    # =========================================================================

    def create_snapshot(
        self,
        snapshot: DesignSnapshot,
        branch_name: str | None = None,
    ) -> NodeId:
        """Record a snapshot as a child of the current node.

        Forward (redo) history is always discarded. If branch_name is given
        a new branch is opened at the new node and made active; otherwise
        the node is appended to the active branch, if any.

        Args:
            snapshot: Design state to record.
            branch_name: Name of a branch to open at the new node.

        Returns:
            Id of the new node.

        Raises:
            DuplicateIdError: If the id factory keeps producing taken ids.
        """
        active = self._branches.active
        if active is not None and self._is_reserved(active.start_node):
            node_id = active.start_node
        else:
            node_id = self._draw_id()

        current = self._stacks.current
        label = branch_name or (active.name if active is not None else None)
        node = HistoryNode(
            id=node_id,
            snapshot=snapshot,
            parents={current} if current is not None else set(),
            branch_label=label,
        )
        self._store.insert(node)
        if current is not None:
            self._store.link(current, node_id)
        self._stacks.push(node_id)

        branch_id = None
        if branch_name:
            branch = self._branches.create(branch_name, node_id)
            self._branches.set_active(branch.id)
            branch_id = branch.id
        elif active is not None:
            active.add_node(node_id)
            branch_id = active.id

        logger.debug(
            f"Recorded node {node_id}"
            + (f" (parent {current})" if current else " (root)")
        )
        self._emit(
            HistoryEventType.SNAPSHOT_CREATED, node_id=node_id, branch_id=branch_id
        )
        self._apply_retention(self._retention)
        self._persist()
        return node_id

    def undo(self) -> DesignSnapshot:
        """Step back to the previous node on the undo path.

        Returns:
            Snapshot of the new current node.

        Raises:
            CannotUndoError: If there is nothing before the current node.
        """
        node_id = self._stacks.undo()
        self._emit(HistoryEventType.UNDO, node_id=node_id)
        self._persist()
        return self._store.require(node_id).snapshot

    def redo(self) -> DesignSnapshot:
        """Step forward to the most recently undone node.

        Returns:
            Snapshot of the new current node.

        Raises:
            CannotRedoError: If there is no forward history.
        """
        node_id = self._stacks.redo()
        self._emit(HistoryEventType.REDO, node_id=node_id)
        self._persist()
        return self._store.require(node_id).snapshot

    def navigate_to(self, node_id: NodeId) -> DesignSnapshot:
        """Make node_id current.

        The undo path becomes the path from the oldest root reaching the
        node. Moving back along the current path keeps the skipped nodes
        redoable; moving anywhere else clears forward history.

        Raises:
            NodeNotFoundError: If the node does not exist.
        """
        node = self._store.require(node_id)
        self._navigate(node_id)
        self._emit(
            HistoryEventType.NAVIGATED,
            node_id=node_id,
            branch_id=self._branches.active_id,
        )
        self._persist()
        return node.snapshot

    def find_path(self, from_node: NodeId, to_node: NodeId) -> list[NodeId]:
        """Path from from_node to to_node along child edges, or []."""
        return find_path(self._store, from_node, to_node)

    def _navigate(self, node_id: NodeId) -> None:
        self._stacks.jump(path_from_root(self._store, node_id))
        self._branches.set_active(self._branches.find_for_node(node_id))

    # =========================================================================
    # Branches
    # =========================================================================

    def create_branch(
        self,
        name: str,
        from_node: NodeId | None = None,
        description: str = "",
    ) -> BranchId:
        """Open a branch and make it active.

        The branch starts at from_node (default: the current node). When
        from_node is not the current node the engine navigates there, so
        the next snapshot continues from it. With no current node the
        branch reserves a fresh id that the next snapshot will use.

        Args:
            name: Branch display name.
            from_node: Node to start the branch at.
            description: Optional description.

        Returns:
            Id of the new branch.

        Raises:
            NodeNotFoundError: If from_node is given and does not exist.
        """
        if from_node is not None:
            self._store.require(from_node)
            if from_node != self._stacks.current:
                self._navigate(from_node)
            start = from_node
        elif self._stacks.current is not None:
            start = self._stacks.current
        else:
            active = self._branches.active
            if active is not None and self._is_reserved(active.start_node):
                start = active.start_node
            else:
                start = self._draw_id()

        branch = self._branches.create(name, start, description=description)
        self._branches.set_active(branch.id)
        logger.info(f"Opened branch '{name}' at {start}")

        self._emit(HistoryEventType.BRANCH_CREATED, node_id=start, branch_id=branch.id)
        self._persist()
        return branch.id

    def switch_to_branch(self, branch_id: BranchId) -> DesignSnapshot | None:
        """Navigate to the newest surviving node of a branch and activate it.

        Returns:
            Snapshot of the new current node. A branch still waiting for
            its first snapshot is activated without moving, so the current
            snapshot (possibly None) is returned.

        Raises:
            BranchNotFoundError: If the branch does not exist.
        """
        branch = self._branches.require(branch_id)
        target = next(
            (n for n in reversed(branch.node_sequence) if n in self._store),
            None,
        )
        if target is not None:
            self._navigate(target)
        self._branches.set_active(branch.id)

        self._emit(
            HistoryEventType.BRANCH_SWITCHED, node_id=target, branch_id=branch.id
        )
        self._persist()
        return self.current_snapshot

    def delete_branch(self, branch_id: BranchId) -> bool:
        """Remove a branch record; its nodes stay in the graph.

        Returns:
            False if the branch does not exist or is active.
        """
        if not self._branches.delete(branch_id):
            return False
        self._emit(HistoryEventType.BRANCH_DELETED, branch_id=branch_id)
        self._persist()
        return True

    def describe_branch(self, branch_id: BranchId, description: str) -> None:
        """Set a branch description."""
        self._branches.require(branch_id).description = description
        self._emit(HistoryEventType.ANNOTATED, branch_id=branch_id)
        self._persist()

    def get_branch(self, branch_id: BranchId) -> Branch | None:
        """Get a copy of a branch, or None."""
        branch = self._branches.get(branch_id)
        return branch.copy() if branch else None

    def list_branches(self) -> list[Branch]:
        """Copies of all branches in creation order."""
        return [branch.copy() for branch in self._branches.values()]

    # =========================================================================
    # Annotations
    # =========================================================================

    def set_bookmark(self, node_id: NodeId, bookmarked: bool = True) -> None:
        """Bookmark or un-bookmark a node."""
        self._store.require(node_id).bookmarked = bookmarked
        self._annotated(node_id)

    def add_tag(self, node_id: NodeId, tag: str) -> None:
        self._store.require(node_id).add_tag(tag)
        self._annotated(node_id)

    def remove_tag(self, node_id: NodeId, tag: str) -> None:
        self._store.require(node_id).remove_tag(tag)
        self._annotated(node_id)

    def set_description(self, node_id: NodeId, description: str) -> None:
        self._store.require(node_id).description = description
        self._annotated(node_id)

    def _annotated(self, node_id: NodeId) -> None:
        self._emit(HistoryEventType.ANNOTATED, node_id=node_id)
        self._persist()

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def state(self) -> HistoryState:
        """Immutable copy of the current state."""
        return HistoryState.build(
            nodes=[node.copy() for node in self._store.values()],
            branches=[branch.copy() for branch in self._branches.values()],
            current_node=self._stacks.current,
            active_branch=self._branches.active_id,
            can_undo=self._stacks.can_undo,
            can_redo=self._stacks.can_redo,
        )

    @property
    def current_node(self) -> NodeId | None:
        return self._stacks.current

    @property
    def current_snapshot(self) -> DesignSnapshot | None:
        current = self._stacks.current
        return self._store.require(current).snapshot if current else None

    @property
    def active_branch(self) -> BranchId | None:
        return self._branches.active_id

    @property
    def can_undo(self) -> bool:
        return self._stacks.can_undo

    @property
    def can_redo(self) -> bool:
        return self._stacks.can_redo

    @property
    def undo_stack(self) -> list[NodeId]:
        return self._stacks.undo_stack

    @property
    def redo_stack(self) -> list[NodeId]:
        return self._stacks.redo_stack

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._store

    def get_node(self, node_id: NodeId) -> HistoryNode | None:
        """Get a copy of a node, or None."""
        node = self._store.get(node_id)
        return node.copy() if node else None

    def list_nodes(self) -> list[HistoryNode]:
        """Copies of all nodes in creation order."""
        return [node.copy() for node in self._store.values()]

    def find_nodes(
        self,
        tag: str | None = None,
        bookmarked: bool | None = None,
        branch_label: str | None = None,
        source: SnapshotSource | None = None,
    ) -> list[HistoryNode]:
        """Nodes matching every given filter, in creation order.

        Args:
            tag: Node must carry this tag.
            bookmarked: Node bookmark flag must equal this.
            branch_label: Node must have been recorded on this branch name.
            source: Snapshot must come from this source.
        """
        found = []
        for node in self._store.values():
            if tag is not None and tag not in node.tags:
                continue
            if bookmarked is not None and node.bookmarked != bookmarked:
                continue
            if branch_label is not None and node.branch_label != branch_label:
                continue
            if source is not None and node.snapshot.source != source:
                continue
            found.append(node.copy())
        return found

    def get_ancestors(self, node_id: NodeId) -> list[NodeId]:
        """Ancestors of a node, oldest first."""
        return sorted(self._store.ancestors(node_id), key=self._store.age_key)

    def get_descendants(self, node_id: NodeId) -> list[NodeId]:
        """Descendants of a node in depth-first discovery order."""
        return self._store.descendants(node_id)

    def compare(self, from_node: NodeId, to_node: NodeId) -> Comparison:
        """Compare the snapshots of two nodes.

        Raises:
            NodeNotFoundError: If either node does not exist.
        """
        first = self._store.require(from_node)
        second = self._store.require(to_node)
        return compare_snapshots(
            first.snapshot, second.snapshot, from_node=from_node, to_node=to_node
        )

    def get_stats(self) -> HistoryStats:
        """Summary statistics of the graph and navigation state."""
        depth: dict[NodeId, int] = {}
        for node_id in self._store.topological_order():
            parents = self._store.require(node_id).parents
            depth[node_id] = 1 + max(
                (depth[p] for p in parents if p in depth), default=0
            )

        nodes = self._store.values()
        undo_depth = len(self._stacks.undo_stack)
        return HistoryStats(
            total_nodes=len(nodes),
            total_branches=len(self._branches),
            max_depth=max(depth.values(), default=0),
            root_count=len(self._store.roots()),
            ai_generated_nodes=sum(
                1 for n in nodes if n.snapshot.source == SnapshotSource.AI
            ),
            user_nodes=sum(
                1 for n in nodes if n.snapshot.source == SnapshotSource.USER
            ),
            bookmarked_nodes=sum(1 for n in nodes if n.bookmarked),
            undo_depth=max(undo_depth - 1, 0),
            redo_depth=len(self._stacks.redo_stack),
        )

    # =========================================================================
    # Retention
    # =========================================================================

    def enforce_retention(self, max_size: int | None = None) -> EvictionResult:
        """Evict the oldest nodes beyond max_size.

        Args:
            max_size: Bound to enforce. Defaults to config.max_history_size.

        Returns:
            What was evicted.
        """
        policy = self._retention if max_size is None else RetentionPolicy(max_size)
        result = self._apply_retention(policy)
        if result.count:
            self._persist()
        return result

    def _apply_retention(self, policy: RetentionPolicy) -> EvictionResult:
        result = policy.enforce(self._store, self._stacks, self._branches)
        if result.count:
            self._emit(
                HistoryEventType.EVICTED,
                node_id=self._stacks.current,
                details={
                    "evicted": list(result.evicted),
                    "branches_dropped": list(result.branches_dropped),
                    "current_reset": result.current_reset,
                },
            )
        return result

    # =========================================================================
    # Export / Import / Persistence
    # =========================================================================

    def export_history(self, indent: int | None = None) -> bytes:
        """Serialize the whole history to UTF-8 JSON."""
        return serialization.export_history(self.state, indent=indent)

    def import_history(self, data: bytes | str) -> HistoryState:
        """Replace the history with a decoded export document.

        Either the whole document is adopted or the engine is untouched.

        Raises:
            ImportDecodeError: If the document is malformed.
        """
        decoded = serialization.import_history(data)
        self._adopt(decoded)
        self._apply_retention(self._retention)
        logger.info(
            f"Imported history: {len(self._store)} nodes, "
            f"{len(self._branches)} branches"
        )
        self._emit(HistoryEventType.IMPORTED, node_id=self._stacks.current)
        self._persist()
        return self.state

    def save(self) -> bool:
        """Persist the current state now.

        Returns:
            True if the state was written.
        """
        return self._persist()

    def _adopt(self, state: HistoryState) -> None:
        """Replace in-memory records with copies from state.

        The replacements are built aside and swapped in together, so a
        failure leaves the engine unchanged.
        """
        store = NodeStore()
        for node in state.nodes.values():
            store.insert(node.copy())
        branches = BranchRegistry()
        for branch in state.branches.values():
            branches.add(branch.copy())
        branches.set_active(
            state.active_branch if state.active_branch in branches else None
        )
        stacks = NavigationStacks()
        if state.current_node is not None and state.current_node in store:
            stacks.reset(path_from_root(store, state.current_node))

        self._store, self._branches, self._stacks = store, branches, stacks

    def _load(self) -> None:
        try:
            loaded = self._storage.load()
        except PersistenceError as e:
            self._persistence_failed("load history", e)
            return
        if loaded is None:
            return

        self._adopt(loaded)
        result = self._apply_retention(self._retention)
        logger.info(
            f"Loaded history: {len(self._store)} nodes, {len(self._branches)} branches"
        )
        self._emit(HistoryEventType.LOADED, node_id=self._stacks.current)
        if result.count:
            self._persist()

    def _persist(self) -> bool:
        if self._storage is None:
            return False
        try:
            self._storage.save(self.state)
        except PersistenceError as e:
            self._persistence_failed("save history", e)
            return False
        self.last_persistence_error = None
        return True

    def _persistence_failed(self, action: str, error: PersistenceError) -> None:
        logger.warning(f"Failed to {action}: {error}")
        self.last_persistence_error = error

    # =========================================================================
    # Events
    # =========================================================================

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        """Register a state-change listener.

        Listeners are called after every mutating operation with a
        HistoryEvent carrying the new state.

        Returns:
            Function that unregisters the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(
        self,
        kind: HistoryEventType,
        node_id: NodeId | None = None,
        branch_id: BranchId | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if not self._listeners:
            return
        event = HistoryEvent(
            kind=kind,
            state=self.state,
            node_id=node_id,
            branch_id=branch_id,
            details=details or {},
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"History listener failed on {kind.value}")

    # =========================================================================
    # Ids
    # =========================================================================

    def _is_reserved(self, node_id: NodeId) -> bool:
        """Whether node_id is a branch start still waiting for its snapshot."""
        if node_id in self._store:
            return False
        return any(
            branch.node_sequence == [node_id] for branch in self._branches.values()
        )

    def _draw_id(self) -> NodeId:
        attempts = self._config.id_attempts
        candidate = None
        for attempt in range(1, attempts + 1):
            candidate = self._id_factory()
            if candidate not in self._store and not self._is_reserved(candidate):
                return candidate
            logger.warning(
                f"Node id collision on {candidate} (attempt {attempt}/{attempts})"
            )
        raise DuplicateIdError(candidate)


def open_history_engine(
    db_path: Path | str | None = None,
    config: HistoryConfig | None = None,
) -> HistoryEngine:
    """Create an engine persisted to SQLite at the configured path.

    Args:
        db_path: Database path. Defaults to CANVAS_HISTORY_DB_PATH.
        config: Engine configuration. Defaults to CANVAS_HISTORY_MAX_SIZE.

    Returns:
        A new, independent engine.
    """
    config = config or HistoryConfig(max_history_size=get_max_history_size())
    return HistoryEngine(storage=SQLiteStorage(get_db_path(db_path)), config=config)


__all__ = [
    "HistoryEngine",
    "HistoryListener",
    "open_history_engine",
]
