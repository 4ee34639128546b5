"""Branch registry: named pointers into the history graph."""

import logging
from collections.abc import Iterable, Iterator

from .errors import BranchNotFoundError
from .models import BRANCH_COLORS, Branch, BranchId, NodeId, new_branch_id

logger = logging.getLogger(__name__)


class BranchRegistry:
    """Registry of branches and the single active branch.

    Branches keep their creation order, which decides which branch claims
    a node shared by several of them.
    """

    def __init__(self) -> None:
        self._branches: dict[BranchId, Branch] = {}
        self._active: BranchId | None = None
        self._colors_used = 0

    def __len__(self) -> int:
        return len(self._branches)

    def __contains__(self, branch_id: object) -> bool:
        return branch_id in self._branches

    def __iter__(self) -> Iterator[BranchId]:
        return iter(self._branches)

    def values(self) -> list[Branch]:
        return list(self._branches.values())

    @property
    def active_id(self) -> BranchId | None:
        return self._active

    @property
    def active(self) -> Branch | None:
        return self._branches.get(self._active) if self._active else None

    def get(self, branch_id: BranchId) -> Branch | None:
        return self._branches.get(branch_id)

    def require(self, branch_id: BranchId) -> Branch:
        """Get a branch or raise BranchNotFoundError."""
        branch = self._branches.get(branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        return branch

    def create(
        self,
        name: str,
        start_node: NodeId,
        description: str = "",
        color_tag: str | None = None,
    ) -> Branch:
        """Register a new branch starting at start_node.

        The branch is not activated; call set_active for that.
        """
        if color_tag is None:
            color_tag = BRANCH_COLORS[self._colors_used % len(BRANCH_COLORS)]
            self._colors_used += 1
        branch = Branch(
            id=new_branch_id(),
            name=name,
            start_node=start_node,
            color_tag=color_tag,
            description=description,
        )
        self._branches[branch.id] = branch
        logger.debug(f"Created branch '{name}' ({branch.id}) at {start_node}")
        return branch

    def add(self, branch: Branch) -> None:
        """Register an existing branch record (used when restoring state)."""
        self._branches[branch.id] = branch
        self._colors_used = max(self._colors_used, len(self._branches))
        if branch.active:
            self._active = branch.id

    def delete(self, branch_id: BranchId) -> bool:
        """Remove a branch. The active branch cannot be deleted."""
        if branch_id not in self._branches or branch_id == self._active:
            return False
        del self._branches[branch_id]
        return True

    def set_active(self, branch_id: BranchId | None) -> None:
        """Make a branch active (or none) and keep the active flags in sync."""
        if branch_id is not None:
            self.require(branch_id)
        for branch in self._branches.values():
            branch.active = branch.id == branch_id
        self._active = branch_id

    def append(self, node_id: NodeId) -> Branch | None:
        """Append a node to the active branch, if there is one."""
        branch = self.active
        if branch is not None:
            branch.add_node(node_id)
        return branch

    def find_for_node(self, node_id: NodeId) -> BranchId | None:
        """Branch containing node_id, preferring the active branch.

        Otherwise the oldest branch containing the node wins.
        """
        active = self.active
        if active is not None and active.contains(node_id):
            return active.id
        for branch in self._branches.values():
            if branch.contains(node_id):
                return branch.id
        return None

    def purge(self, node_ids: Iterable[NodeId]) -> list[BranchId]:
        """Remove node ids from every branch.

        A branch whose start node is removed restarts at its first
        surviving node. Branches with no surviving node are dropped,
        including the active one.

        Returns:
            Ids of dropped branches.
        """
        removed = set(node_ids)
        dropped: list[BranchId] = []
        for branch in list(self._branches.values()):
            if not removed.intersection(branch.node_sequence):
                continue
            survivors = [n for n in branch.node_sequence if n not in removed]
            if not survivors:
                del self._branches[branch.id]
                dropped.append(branch.id)
                if branch.id == self._active:
                    self._active = None
                continue
            branch.node_sequence = survivors
            branch.start_node = survivors[0]
        return dropped


__all__ = ["BranchRegistry"]
