"""Tests for age-ordered retention."""

import random
from datetime import UTC, datetime, timedelta

import pytest

from canvas_history.snapshot import DesignSnapshot

from .branches import BranchRegistry
from .lib import HistoryEngine
from .models import HistoryConfig, HistoryNode, NodeId
from .navigation import NavigationStacks
from .retention import RetentionPolicy
from .store import NodeStore

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _at(seconds: int) -> DesignSnapshot:
    return DesignSnapshot.create(timestamp=T0 + timedelta(seconds=seconds))


class TestRetentionPolicy:
    """Tests for RetentionPolicy.enforce."""

    @pytest.mark.unit
    def test_max_size_must_be_positive(self):
        with pytest.raises(ValueError):
            RetentionPolicy(0)

    @pytest.mark.unit
    def test_noop_within_bound(self):
        store, stacks, branches = NodeStore(), NavigationStacks(), BranchRegistry()
        store.insert(HistoryNode(id=NodeId("a"), snapshot=_at(0)))
        result = RetentionPolicy(1).enforce(store, stacks, branches)
        assert result.count == 0
        assert "a" in store

    @pytest.mark.unit
    def test_evicts_oldest_by_timestamp_not_creation(self):
        store, stacks, branches = NodeStore(), NavigationStacks(), BranchRegistry()
        store.insert(HistoryNode(id=NodeId("late"), snapshot=_at(30)))
        store.insert(HistoryNode(id=NodeId("early"), snapshot=_at(10)))
        store.insert(HistoryNode(id=NodeId("middle"), snapshot=_at(20)))

        result = RetentionPolicy(1).enforce(store, stacks, branches)

        assert result.evicted == ["early", "middle"]
        assert list(store) == ["late"]

    @pytest.mark.unit
    def test_timestamp_ties_break_by_creation_order(self):
        store, stacks, branches = NodeStore(), NavigationStacks(), BranchRegistry()
        for node_id in ("first", "second", "third"):
            store.insert(HistoryNode(id=NodeId(node_id), snapshot=_at(0)))
        result = RetentionPolicy(2).enforce(store, stacks, branches)
        assert result.evicted == ["first"]


class TestEngineRetention:
    """Retention as applied by the engine, including reference repair."""

    @pytest.mark.unit
    def test_scenario_evicts_oldest_and_keeps_current(self, make_snapshot):
        engine = HistoryEngine(config=HistoryConfig(max_history_size=10))
        a = engine.create_snapshot(make_snapshot("x"))
        b = engine.create_snapshot(make_snapshot("x", "y"))
        c = engine.create_snapshot(make_snapshot("x", "y", "z"))

        result = engine.enforce_retention(2)

        assert result.evicted == [a]
        assert a not in engine
        assert engine.current_node == c
        assert engine.undo_stack == [b, c]
        assert engine.get_node(b).is_root

    @pytest.mark.unit
    def test_evicting_current_falls_back_to_stack_top(self, make_snapshot):
        engine = HistoryEngine()
        a = engine.create_snapshot(make_snapshot("x"))
        b = engine.create_snapshot(make_snapshot("y"))
        c = engine.create_snapshot(make_snapshot("z"))
        engine.navigate_to(a)
        d = engine.create_snapshot(make_snapshot("w"))
        engine.navigate_to(a)
        assert engine.current_node == a

        result = engine.enforce_retention(3)

        assert result.evicted == [a]
        assert result.current_reset
        assert engine.current_node is None
        assert engine.undo_stack == []
        assert engine.redo_stack == [d]
        assert set(engine.state.nodes) == {b, c, d}

    @pytest.mark.unit
    def test_branch_restarts_at_first_survivor(self, make_snapshot):
        engine = HistoryEngine()
        engine.create_branch("main")
        a = engine.create_snapshot(make_snapshot("x"))
        b = engine.create_snapshot(make_snapshot("y"))
        branch_id = engine.active_branch

        engine.enforce_retention(1)

        branch = engine.get_branch(branch_id)
        assert a not in engine
        assert branch.start_node == b
        assert branch.node_sequence == [b]

    @pytest.mark.unit
    def test_branch_without_survivors_is_dropped(self, make_snapshot):
        engine = HistoryEngine()
        engine.create_snapshot(make_snapshot("x"))
        side = engine.create_branch("side")
        engine.create_snapshot(make_snapshot("y"), branch_name="main")

        engine.enforce_retention(1)

        assert engine.get_branch(side) is None
        assert len(engine.list_branches()) == 1

    @pytest.mark.unit
    def test_create_snapshot_applies_configured_bound(self, make_snapshot):
        engine = HistoryEngine(config=HistoryConfig(max_history_size=3))
        for index in range(10):
            engine.create_snapshot(make_snapshot(f"e{index}"))
            assert len(engine) <= 3
        assert engine.can_undo
        assert len(engine.undo_stack) == 3

    @pytest.mark.unit
    def test_random_operations_respect_bound_and_age_order(self, make_snapshot):
        """No surviving node is older than an evicted one."""
        rng = random.Random(7)
        engine = HistoryEngine(config=HistoryConfig(max_history_size=8))
        timestamps = {}

        for _ in range(200):
            action = rng.random()
            nodes = list(engine.state.nodes)
            if action < 0.6 or not nodes:
                snapshot = make_snapshot(f"e{rng.randint(0, 5)}")
                node_id = engine.create_snapshot(snapshot)
                timestamps[node_id] = engine.get_node(node_id).timestamp
            elif action < 0.75 and engine.can_undo:
                engine.undo()
            elif action < 0.85 and engine.can_redo:
                engine.redo()
            else:
                engine.navigate_to(rng.choice(nodes))

            state = engine.state
            assert len(state.nodes) <= 8
            survivors = [timestamps[n] for n in state.nodes]
            gone = [t for n, t in timestamps.items() if n not in state.nodes]
            if survivors and gone:
                assert max(gone) <= min(survivors)
            if state.current_node is not None:
                assert state.current_node in state.nodes
            assert set(engine.undo_stack).isdisjoint(engine.redo_stack)

    @pytest.mark.unit
    def test_naive_and_aware_timestamps_are_ordered_together(self):
        engine = HistoryEngine(config=HistoryConfig(max_history_size=1))
        first = engine.create_snapshot(
            DesignSnapshot.create(timestamp=datetime(2024, 1, 1, tzinfo=UTC))
        )
        second = engine.create_snapshot(
            DesignSnapshot.create(timestamp=datetime(2024, 1, 2))
        )

        assert first not in engine
        assert list(engine.state.nodes) == [second]
        assert engine.current_node == second

    @pytest.mark.unit
    def test_naive_older_node_is_evicted_first(self):
        store, stacks, branches = NodeStore(), NavigationStacks(), BranchRegistry()
        aware = DesignSnapshot.create(timestamp=datetime(2024, 1, 2, tzinfo=UTC))
        naive = DesignSnapshot.create(timestamp=datetime(2024, 1, 1))
        store.insert(HistoryNode(id=NodeId("aware"), snapshot=aware))
        store.insert(HistoryNode(id=NodeId("naive"), snapshot=naive))

        result = RetentionPolicy(1).enforce(store, stacks, branches)

        assert result.evicted == ["naive"]
