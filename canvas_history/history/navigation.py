"""Linear undo/redo navigation over the history graph.

The undo stack is the path walked from a root to the current node; the
redo stack holds nodes stepped back over, most recent last. Branching
lives in the graph, so both stacks are rebuilt from graph paths whenever
the user jumps somewhere that is not one undo/redo step away.
"""

from collections.abc import Iterable

from .errors import CannotRedoError, CannotUndoError
from .models import NodeId
from .store import NodeStore


def find_path(store: NodeStore, start: NodeId, goal: NodeId) -> list[NodeId]:
    """Find a path from start to goal following child edges.

    Depth-first, children visited in creation order; the first path found
    is returned. Iterative so long histories cannot hit the recursion limit.

    Args:
        store: Node store to search.
        start: Node to start from.
        goal: Node to reach.

    Returns:
        Node ids from start to goal inclusive, or [] if goal is unreachable.
    """
    if start not in store or goal not in store:
        return []
    if start == goal:
        return [start]

    visited = {start}
    path = [start]
    frontier = [iter(store.ordered_children(start))]

    while frontier:
        child = next(frontier[-1], None)
        if child is None:
            frontier.pop()
            path.pop()
            continue
        if child == goal:
            return path + [child]
        if child in visited:
            continue
        visited.add(child)
        path.append(child)
        frontier.append(iter(store.ordered_children(child)))

    return []


def path_from_root(store: NodeStore, target: NodeId) -> list[NodeId]:
    """Path from the oldest root that reaches target.

    Roots are tried oldest first (timestamp, then creation order) so the
    choice never depends on collection iteration order.
    """
    if target not in store:
        return []
    candidates = store.ancestors(target) | {target}
    for root in store.roots():
        if root not in candidates:
            continue
        path = find_path(store, root, target)
        if path:
            return path
    return [target]


class NavigationStacks:
    """Undo/redo stacks of node ids.

    Invariants: the top of the undo stack is the current node, and no id
    is on both stacks.
    """

    def __init__(self) -> None:
        self._undo: list[NodeId] = []
        self._redo: list[NodeId] = []

    @property
    def undo_stack(self) -> list[NodeId]:
        return list(self._undo)

    @property
    def redo_stack(self) -> list[NodeId]:
        return list(self._redo)

    @property
    def current(self) -> NodeId | None:
        return self._undo[-1] if self._undo else None

    @property
    def can_undo(self) -> bool:
        return len(self._undo) > 1

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def push(self, node_id: NodeId) -> None:
        """Record a new node; forward history is discarded."""
        self._undo.append(node_id)
        self._redo.clear()

    def undo(self) -> NodeId:
        """Step back one node.

        Returns:
            The new current node.

        Raises:
            CannotUndoError: If the current node is the first on the path.
        """
        if not self.can_undo:
            raise CannotUndoError()
        self._redo.append(self._undo.pop())
        return self._undo[-1]

    def redo(self) -> NodeId:
        """Step forward one node.

        Returns:
            The new current node.

        Raises:
            CannotRedoError: If there is no forward history.
        """
        if not self._redo:
            raise CannotRedoError()
        node_id = self._redo.pop()
        self._undo.append(node_id)
        return node_id

    def jump(self, path: list[NodeId]) -> None:
        """Replace the undo path after navigating to path[-1].

        Jumping back along the current path moves the skipped nodes onto
        the redo stack, as repeated undo would. Jumping anywhere else
        clears the redo stack.
        """
        if not path:
            self.reset()
            return
        target = path[-1]
        if target in self._undo:
            index = self._undo.index(target)
            self._redo.extend(reversed(self._undo[index + 1 :]))
        else:
            self._redo.clear()
        self._undo = list(path)
        on_path = set(self._undo)
        self._redo = [node_id for node_id in self._redo if node_id not in on_path]

    def reset(self, path: Iterable[NodeId] = ()) -> None:
        """Set the undo path and drop forward history."""
        self._undo = list(path)
        self._redo = []

    def purge(self, node_ids: Iterable[NodeId]) -> None:
        """Remove ids (e.g. evicted nodes) from both stacks."""
        removed = set(node_ids)
        self._undo = [n for n in self._undo if n not in removed]
        self._redo = [n for n in self._redo if n not in removed]


__all__ = ["NavigationStacks", "find_path", "path_from_root"]
