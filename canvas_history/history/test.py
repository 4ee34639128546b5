"""Tests for the history engine.

Tests cover:
- Snapshot recording, undo/redo and navigation
- Branch creation, switching and deletion
- Annotations, queries and statistics
- Id collision handling
- State-change events
- Best-effort persistence
"""

import itertools
import random

import pytest

from canvas_history.snapshot import SnapshotSource

from .errors import (
    BranchNotFoundError,
    CannotRedoError,
    CannotUndoError,
    DuplicateIdError,
    NodeNotFoundError,
    PersistenceError,
)
from .lib import HistoryEngine
from .models import HistoryConfig, HistoryEventType, NodeId
from .storage import InMemoryStorage

# =============================================================================
# Fixtures
# =============================================================================


class FailingStorage(InMemoryStorage):
    """Storage whose saves always fail."""

    def save(self, state):
        raise PersistenceError("disk full")


@pytest.fixture
def s(make_snapshot):
    """Four distinct snapshots S0..S3."""
    return [
        make_snapshot("title"),
        make_snapshot("title", "body"),
        make_snapshot("title", "hero"),
        make_snapshot("title", "hero", "cta"),
    ]


# =============================================================================
# Scenarios
# =============================================================================


class TestScenarios:
    """The canonical create/undo/redo/branch walk-through."""

    @pytest.mark.unit
    def test_first_snapshot(self, engine, s):
        a = engine.create_snapshot(s[0])
        assert engine.current_node == a
        assert not engine.can_undo
        assert not engine.can_redo
        assert engine.get_node(a).is_root

    @pytest.mark.unit
    def test_second_snapshot_links_parent(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])
        assert engine.get_node(a).children == {b}
        assert engine.get_node(b).parents == {a}
        assert engine.undo_stack == [a, b]
        assert engine.can_undo

    @pytest.mark.unit
    def test_undo_then_redo(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])

        assert engine.undo() == s[0]
        assert engine.current_node == a
        assert engine.redo_stack == [b]

        assert engine.redo() == s[1]
        assert engine.current_node == b
        assert engine.redo_stack == []

    @pytest.mark.unit
    def test_branch_from_earlier_node(self, engine, s):
        a = engine.create_snapshot(s[0])
        engine.create_snapshot(s[1])
        branch_id = engine.create_branch("alt", from_node=a)
        c = engine.create_snapshot(s[2])

        assert engine.get_node(c).parents == {a}
        assert engine.active_branch == branch_id
        branch = engine.get_branch(branch_id)
        assert branch.node_sequence == [a, c]
        assert branch.start_node == a
        assert engine.get_node(c).branch_label == "alt"

    @pytest.mark.unit
    def test_undo_on_empty_and_single(self, engine, s):
        with pytest.raises(CannotUndoError):
            engine.undo()
        engine.create_snapshot(s[0])
        with pytest.raises(CannotUndoError):
            engine.undo()

    @pytest.mark.unit
    def test_redo_without_forward_history(self, engine, s):
        engine.create_snapshot(s[0])
        with pytest.raises(CannotRedoError):
            engine.redo()


# =============================================================================
# Navigation
# =============================================================================


class TestNavigation:
    """Tests for navigate_to and find_path."""

    @pytest.mark.unit
    def test_navigate_missing_node(self, engine):
        with pytest.raises(NodeNotFoundError) as exc_info:
            engine.navigate_to(NodeId("ghost"))
        assert exc_info.value.node_id == "ghost"

    @pytest.mark.unit
    def test_navigate_back_along_path_keeps_redo(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])
        c = engine.create_snapshot(s[2])

        assert engine.navigate_to(a) == s[0]
        assert engine.undo_stack == [a]
        assert engine.can_redo
        assert engine.redo() == s[1]
        assert engine.redo() == s[2]
        assert engine.current_node == c
        assert b in engine

    @pytest.mark.unit
    def test_navigate_to_other_branch_clears_redo(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])
        engine.navigate_to(a)
        c = engine.create_snapshot(s[2])
        engine.undo()
        assert engine.redo_stack == [c]

        engine.navigate_to(b)

        assert engine.undo_stack == [a, b]
        assert not engine.can_redo

    @pytest.mark.unit
    def test_navigate_activates_containing_branch(self, engine, s):
        a = engine.create_snapshot(s[0])
        main = engine.create_branch("main")
        b = engine.create_snapshot(s[1])
        alt = engine.create_branch("alt", from_node=a)
        engine.create_snapshot(s[2])

        engine.navigate_to(b)
        assert engine.active_branch == main

        engine.navigate_to(a)
        assert engine.active_branch == main

        engine.switch_to_branch(alt)
        engine.navigate_to(a)
        assert engine.active_branch == alt

    @pytest.mark.unit
    def test_find_path(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])
        engine.navigate_to(a)
        c = engine.create_snapshot(s[2])
        assert engine.find_path(a, b) == [a, b]
        assert engine.find_path(a, c) == [a, c]
        assert engine.find_path(b, c) == []

    @pytest.mark.unit
    def test_snapshot_always_clears_redo(self, engine, make_snapshot):
        rng = random.Random(3)
        for step in range(150):
            choice = rng.random()
            if choice < 0.4 and engine.can_undo:
                engine.undo()
            elif choice < 0.6 and engine.can_redo:
                engine.redo()
            elif choice < 0.7 and len(engine):
                engine.navigate_to(rng.choice(list(engine.state.nodes)))
            else:
                engine.create_snapshot(make_snapshot(f"e{step}"))
                assert not engine.can_redo
            if engine.undo_stack:
                assert engine.undo_stack[-1] == engine.current_node
            assert set(engine.undo_stack).isdisjoint(engine.redo_stack)

    @pytest.mark.unit
    def test_undo_redo_symmetry(self, engine, make_snapshot):
        rng = random.Random(11)
        for index in range(30):
            engine.create_snapshot(make_snapshot(f"e{index}"))
        for _ in range(100):
            if engine.can_undo and rng.random() < 0.5:
                before = engine.current_snapshot
                engine.undo()
                assert engine.redo() == before
                engine.undo()
            elif engine.can_redo:
                engine.redo()


# =============================================================================
# Branches
# =============================================================================


class TestBranches:
    """Tests for branch operations."""

    @pytest.mark.unit
    def test_create_snapshot_with_branch_name(self, engine, s):
        engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1], branch_name="ai-suggestion")
        branch = engine.get_branch(engine.active_branch)
        assert branch.name == "ai-suggestion"
        assert branch.start_node == b
        assert branch.node_sequence == [b]

    @pytest.mark.unit
    def test_snapshots_append_to_active_branch(self, engine, s):
        a = engine.create_snapshot(s[0])
        branch_id = engine.create_branch("main")
        b = engine.create_snapshot(s[1])
        c = engine.create_snapshot(s[2])
        assert engine.get_branch(branch_id).node_sequence == [a, b, c]

    @pytest.mark.unit
    def test_branch_on_empty_history_reserves_root_id(self, engine, s):
        branch_id = engine.create_branch("main")
        reserved = engine.get_branch(branch_id).start_node
        assert reserved not in engine

        a = engine.create_snapshot(s[0])

        assert a == reserved
        assert engine.get_branch(branch_id).node_sequence == [a]

    @pytest.mark.unit
    def test_create_branch_missing_node(self, engine):
        with pytest.raises(NodeNotFoundError):
            engine.create_branch("alt", from_node=NodeId("ghost"))

    @pytest.mark.unit
    def test_switch_to_branch_goes_to_head(self, engine, s):
        a = engine.create_snapshot(s[0])
        main = engine.create_branch("main")
        engine.create_snapshot(s[1])
        head = engine.create_snapshot(s[2])
        alt = engine.create_branch("alt", from_node=a)
        engine.create_snapshot(s[3])

        assert engine.switch_to_branch(main) == s[2]
        assert engine.current_node == head
        assert engine.active_branch == main
        assert engine.get_branch(main).active
        assert not engine.get_branch(alt).active

    @pytest.mark.unit
    def test_switch_to_missing_branch(self, engine):
        with pytest.raises(BranchNotFoundError):
            engine.switch_to_branch("ghost")

    @pytest.mark.unit
    def test_delete_branch(self, engine, s):
        engine.create_snapshot(s[0])
        first = engine.create_branch("first")
        second = engine.create_branch("second")

        assert engine.delete_branch(second) is False
        assert engine.delete_branch(first) is True
        assert engine.delete_branch(first) is False
        assert len(engine) == 1

    @pytest.mark.unit
    def test_branch_invariant_holds(self, engine, make_snapshot):
        rng = random.Random(5)
        for step in range(120):
            nodes = list(engine.state.nodes)
            branches = list(engine.state.branches)
            choice = rng.random()
            if choice < 0.15:
                from_node = rng.choice(nodes) if nodes else None
                engine.create_branch(f"b{step}", from_node=from_node)
            elif choice < 0.25 and branches:
                engine.switch_to_branch(rng.choice(branches))
            elif choice < 0.3 and branches:
                engine.delete_branch(rng.choice(branches))
            else:
                engine.create_snapshot(make_snapshot(f"e{step}"))
            for branch in engine.list_branches():
                assert branch.node_sequence[0] == branch.start_node
            active = [b for b in engine.list_branches() if b.active]
            assert [b.id for b in active] == (
                [engine.active_branch] if engine.active_branch else []
            )


# =============================================================================
# Annotations and Queries
# =============================================================================


class TestQueries:
    """Tests for annotations, queries and statistics."""

    @pytest.mark.unit
    def test_annotations(self, engine, s):
        a = engine.create_snapshot(s[0])
        engine.set_bookmark(a)
        engine.add_tag(a, "hero")
        engine.add_tag(a, "draft")
        engine.remove_tag(a, "draft")
        engine.set_description(a, "first pass")

        node = engine.get_node(a)
        assert node.bookmarked
        assert node.tags == {"hero"}
        assert node.description == "first pass"

    @pytest.mark.unit
    def test_annotating_missing_node(self, engine):
        with pytest.raises(NodeNotFoundError):
            engine.set_bookmark(NodeId("ghost"))

    @pytest.mark.unit
    def test_returned_records_are_copies(self, engine, s):
        a = engine.create_snapshot(s[0])
        engine.get_node(a).tags.add("sneaky")
        engine.state.nodes[a].children.add(NodeId("x"))
        assert engine.get_node(a).tags == set()
        assert engine.get_node(a).children == set()

    @pytest.mark.unit
    def test_find_nodes(self, engine, make_snapshot):
        a = engine.create_snapshot(make_snapshot("x"))
        b = engine.create_snapshot(
            make_snapshot("y", source=SnapshotSource.AI), branch_name="ai"
        )
        engine.set_bookmark(a)
        engine.add_tag(b, "suggested")

        assert [n.id for n in engine.find_nodes(bookmarked=True)] == [a]
        assert [n.id for n in engine.find_nodes(tag="suggested")] == [b]
        assert [n.id for n in engine.find_nodes(branch_label="ai")] == [b]
        assert [n.id for n in engine.find_nodes(source=SnapshotSource.AI)] == [b]
        assert engine.find_nodes(tag="suggested", bookmarked=True) == []

    @pytest.mark.unit
    def test_ancestors_and_descendants(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])
        c = engine.create_snapshot(s[2])
        assert engine.get_ancestors(c) == [a, b]
        assert engine.get_descendants(a) == [b, c]

    @pytest.mark.unit
    def test_compare(self, engine, s):
        a = engine.create_snapshot(s[0])
        b = engine.create_snapshot(s[1])
        comparison = engine.compare(a, b)
        assert [c.element_id for c in comparison.added] == ["body"]
        assert comparison.from_node == a
        with pytest.raises(NodeNotFoundError):
            engine.compare(a, NodeId("ghost"))

    @pytest.mark.unit
    def test_stats(self, engine, make_snapshot):
        a = engine.create_snapshot(make_snapshot("x"))
        engine.create_snapshot(make_snapshot("y"))
        engine.create_snapshot(make_snapshot("z"))
        engine.navigate_to(a)
        engine.create_snapshot(make_snapshot("w", source=SnapshotSource.AI), "ai")
        engine.set_bookmark(a)
        engine.undo()

        stats = engine.get_stats()
        assert stats.total_nodes == 4
        assert stats.total_branches == 1
        assert stats.max_depth == 3
        assert stats.root_count == 1
        assert stats.ai_generated_nodes == 1
        assert stats.user_nodes == 3
        assert stats.bookmarked_nodes == 1
        assert stats.undo_depth == 0
        assert stats.redo_depth == 1
        assert stats.to_dict()["total_nodes"] == 4


# =============================================================================
# Ids
# =============================================================================


class TestIds:
    """Tests for id generation and collisions."""

    @pytest.mark.unit
    def test_collision_is_retried(self, s):
        ids = iter(["n1", "n1", "n2"])
        engine = HistoryEngine(id_factory=lambda: NodeId(next(ids)))
        assert engine.create_snapshot(s[0]) == "n1"
        assert engine.create_snapshot(s[1]) == "n2"

    @pytest.mark.unit
    def test_persistent_collision_raises(self, s):
        engine = HistoryEngine(
            config=HistoryConfig(id_attempts=3),
            id_factory=lambda: NodeId("same"),
        )
        engine.create_snapshot(s[0])
        with pytest.raises(DuplicateIdError) as exc_info:
            engine.create_snapshot(s[1])
        assert exc_info.value.node_id == "same"
        assert len(engine) == 1
        assert engine.current_node == "same"

    @pytest.mark.unit
    def test_default_ids_are_unique(self, engine, make_snapshot):
        ids = {engine.create_snapshot(make_snapshot()) for _ in range(50)}
        assert len(ids) == 50


# =============================================================================
# Events
# =============================================================================


class TestEvents:
    """Tests for state-change listeners."""

    @pytest.mark.unit
    def test_events_after_mutations(self, engine, s):
        events = []
        engine.subscribe(events.append)

        a = engine.create_snapshot(s[0])
        engine.create_snapshot(s[1])
        engine.undo()
        engine.redo()
        engine.navigate_to(a)
        branch_id = engine.create_branch("alt")
        engine.set_bookmark(a)

        assert [e.kind for e in events] == [
            HistoryEventType.SNAPSHOT_CREATED,
            HistoryEventType.SNAPSHOT_CREATED,
            HistoryEventType.UNDO,
            HistoryEventType.REDO,
            HistoryEventType.NAVIGATED,
            HistoryEventType.BRANCH_CREATED,
            HistoryEventType.ANNOTATED,
        ]
        assert events[0].node_id == a
        assert events[0].state.current_node == a
        assert events[5].branch_id == branch_id

    @pytest.mark.unit
    def test_eviction_event(self, s):
        engine = HistoryEngine(config=HistoryConfig(max_history_size=1))
        events = []
        engine.subscribe(events.append)
        a = engine.create_snapshot(s[0])
        engine.create_snapshot(s[1])
        evicted = [e for e in events if e.kind == HistoryEventType.EVICTED]
        assert len(evicted) == 1
        assert evicted[0].details["evicted"] == [a]

    @pytest.mark.unit
    def test_failing_listener_does_not_break_others(self, engine, s, caplog):
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        engine.subscribe(broken)
        engine.subscribe(seen.append)
        engine.create_snapshot(s[0])

        assert len(seen) == 1
        assert "listener failed" in caplog.text

    @pytest.mark.unit
    def test_unsubscribe(self, engine, s):
        seen = []
        unsubscribe = engine.subscribe(seen.append)
        engine.create_snapshot(s[0])
        unsubscribe()
        unsubscribe()
        engine.create_snapshot(s[1])
        assert len(seen) == 1


# =============================================================================
# Persistence
# =============================================================================


class TestPersistence:
    """Tests for best-effort persistence through the storage protocol."""

    @pytest.mark.unit
    def test_state_survives_reload(self, s):
        storage = InMemoryStorage()
        engine = HistoryEngine(storage=storage)
        a = engine.create_snapshot(s[0])
        branch_id = engine.create_branch("main")
        b = engine.create_snapshot(s[1])
        engine.set_bookmark(a)

        reloaded = HistoryEngine(storage=storage)

        assert reloaded.current_node == b
        assert reloaded.active_branch == branch_id
        assert reloaded.get_node(a).bookmarked
        assert reloaded.get_branch(branch_id).node_sequence == [a, b]
        assert reloaded.undo_stack == [a, b]

    @pytest.mark.unit
    def test_autoload_disabled(self, s):
        storage = InMemoryStorage()
        HistoryEngine(storage=storage).create_snapshot(s[0])
        assert len(HistoryEngine(storage=storage, autoload=False)) == 0

    @pytest.mark.unit
    def test_save_failure_does_not_roll_back(self, s, caplog):
        engine = HistoryEngine(storage=FailingStorage())
        a = engine.create_snapshot(s[0])

        assert engine.current_node == a
        assert isinstance(engine.last_persistence_error, PersistenceError)
        assert engine.save() is False
        assert "Failed to save history" in caplog.text

    @pytest.mark.unit
    def test_unreadable_storage_starts_empty(self, s):
        storage = InMemoryStorage()
        storage.initialize()
        storage.document = b"{corrupt"
        engine = HistoryEngine(storage=storage)
        assert len(engine) == 0
        assert engine.last_persistence_error is not None
        engine.create_snapshot(s[0])
        assert engine.last_persistence_error is None

    @pytest.mark.unit
    def test_reload_applies_smaller_bound(self, make_snapshot):
        storage = InMemoryStorage()
        engine = HistoryEngine(storage=storage)
        for index in range(5):
            engine.create_snapshot(make_snapshot(f"e{index}"))

        smaller = HistoryEngine(
            storage=storage, config=HistoryConfig(max_history_size=2)
        )

        assert len(smaller) == 2
        assert smaller.undo_stack == engine.undo_stack[-2:]

    @pytest.mark.unit
    def test_unpersisted_engine_save(self, engine):
        assert engine.save() is False
        assert engine.last_persistence_error is None

    @pytest.mark.unit
    def test_independent_instances(self, s):
        first, second = HistoryEngine(), HistoryEngine()
        first.create_snapshot(s[0])
        assert len(second) == 0
        assert list(itertools.chain(second.undo_stack, second.redo_stack)) == []
