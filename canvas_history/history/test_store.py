"""Tests for the node store, branch registry and navigation stacks."""

import random

import pytest

from canvas_history.snapshot import DesignSnapshot

from .branches import BranchRegistry
from .errors import (
    BranchNotFoundError,
    CannotRedoError,
    CannotUndoError,
    DuplicateIdError,
    IntegrityError,
    NodeNotFoundError,
)
from .models import BRANCH_COLORS, Branch, HistoryNode, NodeId
from .navigation import NavigationStacks, find_path, path_from_root
from .store import NodeStore

# =============================================================================
# Fixtures
# =============================================================================


def _add(store: NodeStore, node_id: str, *parents: str) -> HistoryNode:
    node = HistoryNode(
        id=NodeId(node_id),
        snapshot=DesignSnapshot.create(),
        parents={NodeId(p) for p in parents},
    )
    store.insert(node)
    for parent in parents:
        store.link(NodeId(parent), node.id)
    return node


@pytest.fixture
def diamond() -> NodeStore:
    """root -> (left, right) -> merge."""
    store = NodeStore()
    _add(store, "root")
    _add(store, "left", "root")
    _add(store, "right", "root")
    _add(store, "merge", "left", "right")
    return store


# =============================================================================
# NodeStore
# =============================================================================


class TestNodeStore:
    """Tests for NodeStore."""

    @pytest.mark.unit
    def test_insert_duplicate_rejected(self):
        store = NodeStore()
        _add(store, "a")
        with pytest.raises(DuplicateIdError) as exc_info:
            _add(store, "a")
        assert exc_info.value.node_id == "a"

    @pytest.mark.unit
    def test_link_requires_parent_listed(self):
        store = NodeStore()
        _add(store, "a")
        _add(store, "b")
        with pytest.raises(IntegrityError):
            store.link(NodeId("a"), NodeId("b"))

    @pytest.mark.unit
    def test_link_missing_node(self):
        store = NodeStore()
        _add(store, "a")
        with pytest.raises(NodeNotFoundError):
            store.link(NodeId("a"), NodeId("ghost"))

    @pytest.mark.unit
    def test_link_refuses_cycle(self, diamond):
        diamond.require(NodeId("root")).parents.add(NodeId("merge"))
        with pytest.raises(IntegrityError, match="cycle"):
            diamond.link(NodeId("merge"), NodeId("root"))

    @pytest.mark.unit
    def test_edges_are_mutual(self, diamond):
        for node in diamond.values():
            for child in node.children:
                assert node.id in diamond.require(child).parents
            for parent in node.parents:
                assert node.id in diamond.require(parent).children

    @pytest.mark.unit
    def test_remove_keeps_descendants_and_edges_mutual(self, diamond):
        diamond.remove(NodeId("left"))
        assert "left" not in diamond
        assert "merge" in diamond
        assert diamond.require(NodeId("merge")).parents == {"right"}
        assert diamond.require(NodeId("root")).children == {"right"}

    @pytest.mark.unit
    def test_remove_makes_orphans_roots(self, diamond):
        diamond.remove(NodeId("root"))
        assert diamond.roots() == ["left", "right"]

    @pytest.mark.unit
    def test_ancestors_and_descendants(self, diamond):
        assert diamond.ancestors(NodeId("merge")) == {"root", "left", "right"}
        assert diamond.descendants(NodeId("root")) == ["left", "merge", "right"]

    @pytest.mark.unit
    def test_topological_order(self, diamond):
        order = diamond.topological_order()
        assert order.index("root") < order.index("left") < order.index("merge")
        assert order.index("right") < order.index("merge")
        assert not diamond.has_cycle()

    @pytest.mark.unit
    def test_ordered_children_follow_creation(self, diamond):
        assert diamond.ordered_children(NodeId("root")) == ["left", "right"]

    @pytest.mark.unit
    def test_random_graphs_stay_acyclic(self):
        """Edges only ever point from older to newer nodes, so no cycles."""
        rng = random.Random(1234)
        for _ in range(20):
            store = NodeStore()
            ids: list[str] = []
            for index in range(40):
                parents = rng.sample(ids, k=min(len(ids), rng.randint(0, 3)))
                _add(store, f"n{index}", *parents)
                ids.append(f"n{index}")
            assert not store.has_cycle()
            for node_id in store:
                assert node_id not in store.ancestors(node_id)


# =============================================================================
# Path finding
# =============================================================================


class TestPathFinding:
    """Tests for find_path and path_from_root."""

    @pytest.mark.unit
    def test_find_path_first_discovered(self, diamond):
        assert find_path(diamond, NodeId("root"), NodeId("merge")) == [
            "root",
            "left",
            "merge",
        ]

    @pytest.mark.unit
    def test_find_path_unreachable(self, diamond):
        assert find_path(diamond, NodeId("left"), NodeId("right")) == []
        assert find_path(diamond, NodeId("merge"), NodeId("root")) == []

    @pytest.mark.unit
    def test_find_path_same_node(self, diamond):
        assert find_path(diamond, NodeId("left"), NodeId("left")) == ["left"]

    @pytest.mark.unit
    def test_find_path_absent_nodes(self, diamond):
        assert find_path(diamond, NodeId("ghost"), NodeId("root")) == []

    @pytest.mark.unit
    def test_find_path_long_chain_is_iterative(self):
        store = NodeStore()
        _add(store, "n0")
        for index in range(1, 2000):
            _add(store, f"n{index}", f"n{index - 1}")
        path = find_path(store, NodeId("n0"), NodeId("n1999"))
        assert len(path) == 2000

    @pytest.mark.unit
    def test_path_from_root_prefers_oldest_reaching_root(self):
        store = NodeStore()
        _add(store, "old")
        _add(store, "other")
        _add(store, "target", "other")
        assert path_from_root(store, NodeId("target")) == ["other", "target"]

    @pytest.mark.unit
    def test_path_from_root_of_root(self, diamond):
        assert path_from_root(diamond, NodeId("root")) == ["root"]


# =============================================================================
# NavigationStacks
# =============================================================================


class TestNavigationStacks:
    """Tests for NavigationStacks."""

    @pytest.mark.unit
    def test_undo_requires_two_entries(self):
        stacks = NavigationStacks()
        stacks.push(NodeId("a"))
        assert not stacks.can_undo
        with pytest.raises(CannotUndoError):
            stacks.undo()

    @pytest.mark.unit
    def test_redo_requires_forward_history(self):
        stacks = NavigationStacks()
        with pytest.raises(CannotRedoError):
            stacks.redo()

    @pytest.mark.unit
    def test_push_clears_redo(self):
        stacks = NavigationStacks()
        stacks.push(NodeId("a"))
        stacks.push(NodeId("b"))
        stacks.undo()
        assert stacks.redo_stack == ["b"]
        stacks.push(NodeId("c"))
        assert stacks.redo_stack == []

    @pytest.mark.unit
    def test_jump_back_keeps_redo(self):
        stacks = NavigationStacks()
        for node_id in ("a", "b", "c"):
            stacks.push(NodeId(node_id))
        stacks.jump([NodeId("a")])
        assert stacks.current == "a"
        assert stacks.redo_stack == ["c", "b"]
        assert stacks.redo() == "b"
        assert stacks.redo() == "c"

    @pytest.mark.unit
    def test_jump_elsewhere_clears_redo(self):
        stacks = NavigationStacks()
        stacks.push(NodeId("a"))
        stacks.push(NodeId("b"))
        stacks.undo()
        stacks.jump([NodeId("a"), NodeId("x")])
        assert stacks.redo_stack == []
        assert stacks.undo_stack == ["a", "x"]

    @pytest.mark.unit
    def test_purge(self):
        stacks = NavigationStacks()
        for node_id in ("a", "b", "c"):
            stacks.push(NodeId(node_id))
        stacks.undo()
        stacks.purge([NodeId("a"), NodeId("c")])
        assert stacks.undo_stack == ["b"]
        assert stacks.redo_stack == []


# =============================================================================
# BranchRegistry
# =============================================================================


class TestBranchRegistry:
    """Tests for BranchRegistry."""

    @pytest.mark.unit
    def test_branch_sequence_starts_at_start_node(self):
        branch = Branch(id="b1", name="main", start_node=NodeId("a"))
        assert branch.node_sequence == ["a"]
        with pytest.raises(ValueError):
            Branch(id="b2", name="bad", start_node=NodeId("a"), node_sequence=["x"])

    @pytest.mark.unit
    def test_create_cycles_colors(self):
        registry = BranchRegistry()
        colors = [
            registry.create(f"b{i}", NodeId("a")).color_tag
            for i in range(len(BRANCH_COLORS) + 1)
        ]
        assert colors[: len(BRANCH_COLORS)] == list(BRANCH_COLORS)
        assert colors[-1] == BRANCH_COLORS[0]

    @pytest.mark.unit
    def test_active_branch_cannot_be_deleted(self):
        registry = BranchRegistry()
        branch = registry.create("main", NodeId("a"))
        registry.set_active(branch.id)
        assert registry.delete(branch.id) is False
        registry.set_active(None)
        assert registry.delete(branch.id) is True
        assert registry.delete(branch.id) is False

    @pytest.mark.unit
    def test_set_active_syncs_flags(self):
        registry = BranchRegistry()
        first = registry.create("one", NodeId("a"))
        second = registry.create("two", NodeId("a"))
        registry.set_active(first.id)
        registry.set_active(second.id)
        assert not first.active
        assert second.active
        with pytest.raises(BranchNotFoundError):
            registry.set_active("missing")

    @pytest.mark.unit
    def test_find_for_node_prefers_active(self):
        registry = BranchRegistry()
        first = registry.create("one", NodeId("a"))
        second = registry.create("two", NodeId("a"))
        assert registry.find_for_node(NodeId("a")) == first.id
        registry.set_active(second.id)
        assert registry.find_for_node(NodeId("a")) == second.id
        assert registry.find_for_node(NodeId("zzz")) is None

    @pytest.mark.unit
    def test_purge_restarts_and_drops(self):
        registry = BranchRegistry()
        kept = registry.create("kept", NodeId("a"))
        kept.add_node(NodeId("b"))
        gone = registry.create("gone", NodeId("a"))
        registry.set_active(gone.id)

        dropped = registry.purge([NodeId("a")])

        assert dropped == [gone.id]
        assert kept.start_node == "b"
        assert kept.node_sequence == ["b"]
        assert registry.active_id is None
