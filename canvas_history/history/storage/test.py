"""Tests for history storage backends."""

import sqlite3

import pytest

from ..errors import PersistenceError
from ..lib import HistoryEngine
from ..models import HistoryConfig
from ..serialization import export_history
from .memory import InMemoryStorage
from .sqlite import SQLiteStorage

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def storage(db_path):
    """Initialized SQLite storage in a temporary directory."""
    store = SQLiteStorage(db_path)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def state(make_snapshot):
    """A state with a fork, a branch and annotations."""
    engine = HistoryEngine()
    a = engine.create_snapshot(make_snapshot("logo"))
    engine.create_snapshot(make_snapshot("logo", "nav"), branch_name="main")
    engine.create_branch("alt", from_node=a)
    c = engine.create_snapshot(make_snapshot("logo", "hero"))
    engine.add_tag(c, "candidate")
    engine.set_description(a, "blank page")
    return engine.state


# =============================================================================
# SQLiteStorage
# =============================================================================


class TestSQLiteStorage:
    """Tests for SQLiteStorage."""

    @pytest.mark.unit
    def test_initialize_creates_database(self, db_path):
        store = SQLiteStorage(db_path)
        store.initialize()
        store.close()
        assert db_path.exists()

    @pytest.mark.unit
    def test_uninitialized_storage_raises(self, db_path, state):
        with pytest.raises(PersistenceError, match="not initialized"):
            SQLiteStorage(db_path).save(state)

    @pytest.mark.unit
    def test_empty_database_loads_none(self, storage):
        assert storage.load() is None

    @pytest.mark.unit
    def test_save_and_load(self, storage, state):
        storage.save(state)
        loaded = storage.load()

        assert list(loaded.nodes) == list(state.nodes)
        for node_id, node in state.nodes.items():
            assert loaded.nodes[node_id].snapshot == node.snapshot
            assert loaded.nodes[node_id].parents == node.parents
            assert loaded.nodes[node_id].children == node.children
            assert loaded.nodes[node_id].tags == node.tags
            assert loaded.nodes[node_id].description == node.description
        assert list(loaded.branches) == list(state.branches)
        for branch_id, branch in state.branches.items():
            assert loaded.branches[branch_id].node_sequence == branch.node_sequence
            assert loaded.branches[branch_id].active == branch.active
        assert loaded.current_node == state.current_node
        assert loaded.active_branch == state.active_branch

    @pytest.mark.unit
    def test_save_replaces_previous_state(self, storage, state, make_snapshot):
        storage.save(state)
        engine = HistoryEngine()
        only = engine.create_snapshot(make_snapshot("solo"))
        storage.save(engine.state)

        loaded = storage.load()
        assert list(loaded.nodes) == [only]
        assert dict(loaded.branches) == {}

    @pytest.mark.unit
    def test_in_memory_database(self, state):
        store = SQLiteStorage(":memory:")
        store.initialize()
        store.save(state)
        assert store.load().current_node == state.current_node
        store.close()

    @pytest.mark.unit
    def test_inconsistent_rows_raise(self, storage, state, db_path):
        storage.save(state)
        conn = sqlite3.connect(db_path)
        conn.execute("UPDATE history_nodes SET parents = '[\"ghost\"]'")
        conn.commit()
        conn.close()

        with pytest.raises(PersistenceError, match="inconsistent"):
            storage.load()

    @pytest.mark.unit
    def test_unopenable_path_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(PersistenceError):
            SQLiteStorage(blocker / "history.db").initialize()


# =============================================================================
# InMemoryStorage
# =============================================================================


class TestInMemoryStorage:
    """Tests for InMemoryStorage."""

    @pytest.mark.unit
    def test_round_trip(self, state):
        store = InMemoryStorage()
        store.initialize()
        assert store.load() is None
        store.save(state)
        assert store.save_count == 1
        assert store.load().current_node == state.current_node

    @pytest.mark.unit
    def test_requires_initialize(self, state):
        with pytest.raises(PersistenceError):
            InMemoryStorage().save(state)


# =============================================================================
# Engine integration
# =============================================================================


class TestEngineWithSQLite:
    """HistoryEngine persisted to SQLite."""

    @pytest.mark.integration
    def test_reopen_restores_history(self, sqlite_engine, db_path, make_snapshot):
        a = sqlite_engine.create_snapshot(make_snapshot("x"))
        branch_id = sqlite_engine.create_branch("main")
        b = sqlite_engine.create_snapshot(make_snapshot("x", "y"))
        sqlite_engine.undo()
        sqlite_engine.close()

        with HistoryEngine(db_path=db_path) as reopened:
            assert reopened.current_node == a
            assert reopened.active_branch == branch_id
            assert reopened.get_branch(branch_id).node_sequence == [a, b]
            assert reopened.get_node(a).children == {b}
            assert not reopened.can_redo

    @pytest.mark.integration
    def test_import_is_persisted(self, sqlite_engine, db_path, state):
        sqlite_engine.import_history(export_history(state))
        sqlite_engine.close()

        with HistoryEngine(db_path=db_path, config=HistoryConfig()) as reopened:
            assert set(reopened.state.nodes) == set(state.nodes)
            assert reopened.current_node == state.current_node
