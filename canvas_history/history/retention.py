"""Bounded retention of history nodes.

Nodes are evicted strictly by age, (timestamp, creation order), so the
node count never exceeds the configured maximum. References to evicted
nodes held by the navigation stacks and branches are repaired afterwards.
"""

import logging

from .branches import BranchRegistry
from .models import EvictionResult, NodeId
from .navigation import NavigationStacks
from .store import NodeStore

logger = logging.getLogger(__name__)


class RetentionPolicy:
    """Evicts the oldest nodes once the store grows past max_size."""

    def __init__(self, max_size: int = 1000):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self.max_size = max_size

    def select(self, store: NodeStore) -> list[NodeId]:
        """Ids that would be evicted, oldest first."""
        excess = len(store) - self.max_size
        if excess <= 0:
            return []
        return sorted(store, key=store.age_key)[:excess]

    def enforce(
        self,
        store: NodeStore,
        stacks: NavigationStacks,
        branches: BranchRegistry,
    ) -> EvictionResult:
        """Evict excess nodes and repair dangling references.

        Args:
            store: Node store to trim.
            stacks: Undo/redo stacks to purge.
            branches: Branch registry to purge.

        Returns:
            What was evicted and which branches were dropped.
        """
        victims = self.select(store)
        if not victims:
            return EvictionResult()

        current_before = stacks.current
        for node_id in victims:
            store.remove(node_id)

        stacks.purge(victims)
        dropped = branches.purge(victims)
        current_reset = current_before is not None and current_before in victims

        logger.info(
            f"Evicted {len(victims)} node(s), {len(store)} remaining"
            + (f", dropped {len(dropped)} branch(es)" if dropped else "")
        )
        return EvictionResult(
            evicted=victims,
            branches_dropped=dropped,
            current_reset=current_reset,
        )


__all__ = ["RetentionPolicy"]
