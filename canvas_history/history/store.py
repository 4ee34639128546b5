"""Node store: sole owner of history nodes and their edges.

Edges are stored as id references on both ends (``parents`` on the child,
``children`` on the parent), so the store never holds reference cycles
even though the graph is navigable in both directions.
"""

import logging
from collections.abc import Iterator

from .errors import DuplicateIdError, IntegrityError, NodeNotFoundError
from .models import HistoryNode, NodeId

logger = logging.getLogger(__name__)


class NodeStore:
    """Arena of history nodes keyed by id.

    Nodes keep their insertion order, which doubles as the creation order
    used to break timestamp ties and to make traversals deterministic.
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeId, HistoryNode] = {}
        self._order: dict[NodeId, int] = {}
        self._counter = 0

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[NodeId]:
        return iter(self._nodes)

    def values(self) -> list[HistoryNode]:
        """All nodes in creation order."""
        return list(self._nodes.values())

    def get(self, node_id: NodeId) -> HistoryNode | None:
        return self._nodes.get(node_id)

    def require(self, node_id: NodeId) -> HistoryNode:
        """Get a node or raise NodeNotFoundError."""
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def order(self, node_id: NodeId) -> int:
        """Creation rank of a node (lower is older)."""
        return self._order[node_id]

    def age_key(self, node_id: NodeId) -> tuple:
        """Sort key ordering nodes by timestamp, then creation order."""
        return (self._nodes[node_id].timestamp, self._order[node_id])

    # =========================================================================
    # Mutation
    # =========================================================================

    def insert(self, node: HistoryNode) -> HistoryNode:
        """Add a node.

        Raises:
            DuplicateIdError: If the id is already present.
        """
        if node.id in self._nodes:
            raise DuplicateIdError(node.id)
        self._nodes[node.id] = node
        self._order[node.id] = self._counter
        self._counter += 1
        return node

    def link(self, parent_id: NodeId, child_id: NodeId) -> None:
        """Record child_id in parent's children.

        The child must already list the parent in its ``parents`` set.

        Raises:
            NodeNotFoundError: If either node is absent.
            IntegrityError: If the child does not list the parent, or the
                edge would close a cycle.
        """
        parent = self.require(parent_id)
        child = self.require(child_id)
        if parent_id not in child.parents:
            raise IntegrityError(
                f"Node {child_id} does not list {parent_id} as a parent"
            )
        if self.would_cycle(parent_id, child_id):
            raise IntegrityError(f"Edge {parent_id} -> {child_id} would form a cycle")
        parent.add_child(child_id)

    def remove(self, node_id: NodeId) -> HistoryNode:
        """Delete a node and detach it from its neighbours.

        Descendants are kept; children that lose their only parent become
        roots.

        Raises:
            NodeNotFoundError: If the node is absent.
        """
        node = self.require(node_id)
        for parent_id in node.parents:
            parent = self._nodes.get(parent_id)
            if parent is not None:
                parent.remove_child(node_id)
        for child_id in node.children:
            child = self._nodes.get(child_id)
            if child is not None:
                child.parents.discard(node_id)
        del self._nodes[node_id]
        del self._order[node_id]
        logger.debug(f"Removed node {node_id}")
        return node

    # =========================================================================
    # Traversal
    # =========================================================================

    def ordered_children(self, node_id: NodeId) -> list[NodeId]:
        """Children of a node in creation order."""
        node = self._nodes.get(node_id)
        if node is None:
            return []
        present = [c for c in node.children if c in self._order]
        return sorted(present, key=self._order.__getitem__)

    def roots(self) -> list[NodeId]:
        """Parentless nodes, oldest first."""
        roots = [node.id for node in self._nodes.values() if node.is_root]
        return sorted(roots, key=self.age_key)

    def ancestors(self, node_id: NodeId) -> set[NodeId]:
        """All nodes reachable by following parent edges."""
        self.require(node_id)
        seen: set[NodeId] = set()
        pending = list(self._nodes[node_id].parents)
        while pending:
            current = pending.pop()
            if current in seen or current not in self._nodes:
                continue
            seen.add(current)
            pending.extend(self._nodes[current].parents)
        return seen

    def descendants(self, node_id: NodeId) -> list[NodeId]:
        """All nodes reachable by following child edges, in discovery order."""
        self.require(node_id)
        seen: set[NodeId] = set()
        found: list[NodeId] = []
        pending = list(reversed(self.ordered_children(node_id)))
        while pending:
            current = pending.pop()
            if current in seen:
                continue
            seen.add(current)
            found.append(current)
            pending.extend(reversed(self.ordered_children(current)))
        return found

    def would_cycle(self, parent_id: NodeId, child_id: NodeId) -> bool:
        """Whether adding parent -> child would make a node its own ancestor."""
        if parent_id == child_id:
            return True
        return child_id in self.ancestors(parent_id)

    def has_cycle(self) -> bool:
        """Detect a cycle anywhere in the graph (Kahn's algorithm)."""
        return len(self.topological_order()) != len(self._nodes)

    def topological_order(self) -> list[NodeId]:
        """Nodes ordered so every parent precedes its children.

        Nodes on a cycle are omitted, so a short result signals a cycle.
        """
        indegree = {
            node_id: sum(1 for p in node.parents if p in self._nodes)
            for node_id, node in self._nodes.items()
        }
        ready = [node_id for node_id, degree in indegree.items() if degree == 0]
        ordered: list[NodeId] = []
        while ready:
            current = ready.pop(0)
            ordered.append(current)
            for child_id in self.ordered_children(current):
                indegree[child_id] -= 1
                if indegree[child_id] == 0:
                    ready.append(child_id)
        return ordered


__all__ = ["NodeStore"]
