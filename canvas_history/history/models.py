"""Data models for the history engine.

This module defines the node and branch records owned by the engine,
the immutable state copy handed to callers, and the small result and
event types returned by engine operations.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, NewType
from uuid import uuid4

from canvas_history.snapshot import DesignSnapshot

NodeId = NewType("NodeId", str)
BranchId = NewType("BranchId", str)

# Palette cycled through as branches are created
BRANCH_COLORS: tuple[str, ...] = (
    "#3B82F6",
    "#EF4444",
    "#22C55E",
    "#F59E0B",
    "#8B5CF6",
    "#06B6D4",
    "#EC4899",
    "#84CC16",
)


def new_node_id() -> NodeId:
    """Generate a random node id."""
    return NodeId(str(uuid4()))


def new_branch_id() -> BranchId:
    """Generate a random branch id."""
    return BranchId(str(uuid4()))


@dataclass
class HistoryNode:
    """One recorded snapshot in the history graph.

    Attributes:
        id: Immutable identity.
        snapshot: Immutable design payload.
        parents: Predecessor node ids (empty only for a root).
        children: Successor node ids, maintained by the node store.
        branch_label: Name of the branch the node was recorded on, if any.
        bookmarked: User bookmark flag.
        tags: User tags.
        description: User description.
    """

    id: NodeId
    snapshot: DesignSnapshot
    parents: set[NodeId] = field(default_factory=set)
    children: set[NodeId] = field(default_factory=set)
    branch_label: str | None = None

    # Annotations
    bookmarked: bool = False
    tags: set[str] = field(default_factory=set)
    description: str = ""

    @property
    def timestamp(self) -> datetime:
        """Capture time of the snapshot."""
        return self.snapshot.timestamp

    @property
    def is_root(self) -> bool:
        """Whether the node has no parents."""
        return not self.parents

    def add_child(self, child_id: NodeId) -> None:
        self.children.add(child_id)

    def remove_child(self, child_id: NodeId) -> None:
        self.children.discard(child_id)

    def add_tag(self, tag: str) -> None:
        self.tags.add(tag)

    def remove_tag(self, tag: str) -> None:
        self.tags.discard(tag)

    def copy(self) -> "HistoryNode":
        """Copy with independent edge and tag sets; the snapshot is shared."""
        return replace(
            self,
            parents=set(self.parents),
            children=set(self.children),
            tags=set(self.tags),
        )


@dataclass
class Branch:
    """A named line of edits through the history graph.

    Attributes:
        id: Unique branch identifier.
        name: Display name.
        start_node: Node the branch was opened at; always node_sequence[0].
        color_tag: Display color.
        node_sequence: Nodes belonging to the branch, in insertion order.
        active: Whether this is the engine's active branch.
        description: User description.
        created_at: Creation timestamp.
    """

    id: BranchId
    name: str
    start_node: NodeId
    color_tag: str = BRANCH_COLORS[0]
    node_sequence: list[NodeId] = field(default_factory=list)
    active: bool = False
    description: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.node_sequence:
            self.node_sequence.append(self.start_node)
        elif self.node_sequence[0] != self.start_node:
            raise ValueError(
                f"Branch {self.id} must start with {self.start_node}, "
                f"got {self.node_sequence[0]}"
            )

    @property
    def head(self) -> NodeId:
        """Most recently appended node."""
        return self.node_sequence[-1]

    def add_node(self, node_id: NodeId) -> None:
        if node_id not in self.node_sequence:
            self.node_sequence.append(node_id)

    def contains(self, node_id: NodeId) -> bool:
        return node_id in self.node_sequence

    def copy(self) -> "Branch":
        return replace(self, node_sequence=list(self.node_sequence))


@dataclass(frozen=True)
class HistoryState:
    """Immutable copy of the engine's externally visible state.

    Attributes:
        nodes: Node records keyed by id.
        branches: Branch records keyed by id.
        current_node: Node the user is at, if any.
        active_branch: Branch new snapshots are appended to, if any.
        can_undo: Whether undo() would succeed.
        can_redo: Whether redo() would succeed.
    """

    nodes: Mapping[NodeId, HistoryNode] = field(
        default_factory=lambda: MappingProxyType({})
    )
    branches: Mapping[BranchId, Branch] = field(
        default_factory=lambda: MappingProxyType({})
    )
    current_node: NodeId | None = None
    active_branch: BranchId | None = None
    can_undo: bool = False
    can_redo: bool = False

    @classmethod
    def build(
        cls,
        nodes: list[HistoryNode],
        branches: list[Branch] | None = None,
        current_node: NodeId | None = None,
        active_branch: BranchId | None = None,
        can_undo: bool = False,
        can_redo: bool = False,
    ) -> "HistoryState":
        """Build a state from record lists, preserving their order."""
        return cls(
            nodes=MappingProxyType({node.id: node for node in nodes}),
            branches=MappingProxyType({b.id: b for b in branches or []}),
            current_node=current_node,
            active_branch=active_branch,
            can_undo=can_undo,
            can_redo=can_redo,
        )

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def current_snapshot(self) -> DesignSnapshot | None:
        if self.current_node is None or self.current_node not in self.nodes:
            return None
        return self.nodes[self.current_node].snapshot


@dataclass
class HistoryConfig:
    """Configuration for a history engine.

    Attributes:
        max_history_size: Maximum number of nodes retained.
        id_attempts: Id collisions tolerated before DuplicateIdError propagates.
    """

    max_history_size: int = 1000
    id_attempts: int = 3

    def __post_init__(self) -> None:
        if self.max_history_size < 1:
            raise ValueError(
                f"max_history_size must be >= 1, got {self.max_history_size}"
            )
        if self.id_attempts < 1:
            raise ValueError(f"id_attempts must be >= 1, got {self.id_attempts}")


@dataclass
class HistoryStats:
    """Summary statistics of a history graph.

    Attributes:
        total_nodes: Number of nodes.
        total_branches: Number of branches.
        max_depth: Longest root-to-leaf path length, in nodes.
        root_count: Number of parentless nodes.
        ai_generated_nodes: Nodes whose snapshot came from an AI provider.
        user_nodes: Nodes whose snapshot came from a user edit.
        bookmarked_nodes: Bookmarked nodes.
        undo_depth: Steps available to undo.
        redo_depth: Steps available to redo.
    """

    total_nodes: int = 0
    total_branches: int = 0
    max_depth: int = 0
    root_count: int = 0
    ai_generated_nodes: int = 0
    user_nodes: int = 0
    bookmarked_nodes: int = 0
    undo_depth: int = 0
    redo_depth: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class EvictionResult:
    """Result of a retention pass.

    Attributes:
        evicted: Node ids removed, oldest first.
        branches_dropped: Branches removed because none of their nodes survived.
        current_reset: Whether the current node was evicted and replaced.
    """

    evicted: list[NodeId] = field(default_factory=list)
    branches_dropped: list[BranchId] = field(default_factory=list)
    current_reset: bool = False

    @property
    def count(self) -> int:
        return len(self.evicted)


class HistoryEventType(str, Enum):
    """Kinds of state change announced to subscribers."""

    SNAPSHOT_CREATED = "snapshot_created"
    UNDO = "undo"
    REDO = "redo"
    NAVIGATED = "navigated"
    BRANCH_CREATED = "branch_created"
    BRANCH_SWITCHED = "branch_switched"
    BRANCH_DELETED = "branch_deleted"
    ANNOTATED = "annotated"
    EVICTED = "evicted"
    IMPORTED = "imported"
    LOADED = "loaded"


@dataclass(frozen=True)
class HistoryEvent:
    """A state change notification.

    Attributes:
        kind: What happened.
        state: Engine state after the change.
        node_id: Node the change concerns, if any.
        branch_id: Branch the change concerns, if any.
        details: Extra information (e.g. evicted ids).
    """

    kind: HistoryEventType
    state: HistoryState
    node_id: NodeId | None = None
    branch_id: BranchId | None = None
    details: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "NodeId",
    "BranchId",
    "BRANCH_COLORS",
    "new_node_id",
    "new_branch_id",
    "HistoryNode",
    "Branch",
    "HistoryState",
    "HistoryConfig",
    "HistoryStats",
    "EvictionResult",
    "HistoryEventType",
    "HistoryEvent",
]
