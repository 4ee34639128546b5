"""Tests for the export/import codec."""

import json

import pytest

from . import lib as engine_module
from .errors import ImportDecodeError
from .lib import HistoryEngine
from .models import HistoryConfig
from .serialization import FORMAT_VERSION, export_history, import_history

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def populated(make_snapshot) -> HistoryEngine:
    """Engine with a fork, a branch, annotations and an undone step."""
    engine = HistoryEngine()
    a = engine.create_snapshot(make_snapshot("title"))
    b = engine.create_snapshot(make_snapshot("title", "body"))
    engine.create_branch("alt", from_node=a)
    c = engine.create_snapshot(make_snapshot("title", "hero"))
    engine.set_bookmark(b)
    engine.add_tag(c, "favourite")
    engine.set_description(a, "first draft")
    engine.create_snapshot(make_snapshot("title", "hero", "cta"))
    engine.undo()
    return engine


def _document(engine: HistoryEngine) -> dict:
    return json.loads(engine.export_history())


# =============================================================================
# Round trip
# =============================================================================


class TestRoundTrip:
    """Export followed by import preserves the graph."""

    @pytest.mark.unit
    def test_export_is_json_document(self, populated):
        document = _document(populated)
        assert document["format_version"] == FORMAT_VERSION
        assert len(document["nodes"]) == 4
        assert len(document["branches"]) == 1
        assert document["current_node"] == populated.current_node
        assert document["active_branch"] == populated.active_branch

    @pytest.mark.unit
    def test_round_trip_preserves_nodes_and_pointers(self, populated):
        original = populated.state
        restored = import_history(export_history(original))

        assert list(restored.nodes) == list(original.nodes)
        for node_id, node in original.nodes.items():
            copy = restored.nodes[node_id]
            assert copy.snapshot == node.snapshot
            assert copy.parents == node.parents
            assert copy.children == node.children
            assert copy.bookmarked == node.bookmarked
            assert copy.tags == node.tags
            assert copy.description == node.description
            assert copy.branch_label == node.branch_label
        assert restored.current_node == original.current_node
        assert restored.active_branch == original.active_branch

    @pytest.mark.unit
    def test_round_trip_preserves_branches(self, populated):
        original = populated.state
        restored = import_history(export_history(original))
        for branch_id, branch in original.branches.items():
            copy = restored.branches[branch_id]
            assert copy.name == branch.name
            assert copy.start_node == branch.start_node
            assert copy.node_sequence == branch.node_sequence
            assert copy.color_tag == branch.color_tag
            assert copy.active == branch.active
            assert copy.created_at == branch.created_at

    @pytest.mark.unit
    def test_engine_import_rebuilds_navigation(self, populated, make_snapshot):
        data = populated.export_history()
        other = HistoryEngine()
        other.create_snapshot(make_snapshot("unrelated"))

        state = other.import_history(data)

        assert state.current_node == populated.current_node
        assert other.undo_stack == populated.undo_stack
        assert other.can_undo
        assert not other.can_redo

    @pytest.mark.unit
    def test_empty_history_round_trip(self):
        restored = import_history(export_history(HistoryEngine().state))
        assert restored.is_empty
        assert restored.current_node is None

    @pytest.mark.unit
    def test_reserved_branch_round_trip(self):
        engine = HistoryEngine()
        branch_id = engine.create_branch("draft")
        restored = import_history(engine.export_history())
        assert restored.active_branch == branch_id
        assert restored.is_empty


# =============================================================================
# Rejection
# =============================================================================


class TestImportRejects:
    """Malformed documents raise ImportDecodeError and leave state untouched."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "payload",
        [b"not json", b"[]", b'{"nodes": "nope"}', "ÿ".encode("latin-1")],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(ImportDecodeError):
            import_history(payload)

    @pytest.mark.unit
    def test_unknown_version(self, populated):
        document = _document(populated)
        document["format_version"] = "9.9"
        with pytest.raises(ImportDecodeError, match="version"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_duplicate_node_ids(self, populated):
        document = _document(populated)
        document["nodes"].append(document["nodes"][0])
        with pytest.raises(ImportDecodeError, match="Duplicate node"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_dangling_parent(self, populated):
        document = _document(populated)
        document["nodes"][1]["parents"] = ["ghost"]
        with pytest.raises(ImportDecodeError, match="missing parent"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_cycle(self, populated):
        document = _document(populated)
        first, second = document["nodes"][0], document["nodes"][1]
        first["parents"] = [second["id"]]
        with pytest.raises(ImportDecodeError, match="cycle"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_branch_start_mismatch(self, populated):
        document = _document(populated)
        branch = document["branches"][0]
        branch["node_sequence"] = list(reversed(branch["node_sequence"]))
        with pytest.raises(ImportDecodeError, match="does not start"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_dangling_current_node(self, populated):
        document = _document(populated)
        document["current_node"] = "ghost"
        with pytest.raises(ImportDecodeError, match="Current node"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_dangling_active_branch(self, populated):
        document = _document(populated)
        document["active_branch"] = "ghost"
        with pytest.raises(ImportDecodeError, match="Active branch"):
            import_history(json.dumps(document))

    @pytest.mark.unit
    def test_failed_engine_import_leaves_state(self, populated):
        before = populated.export_history()
        with pytest.raises(ImportDecodeError):
            populated.import_history(b"{broken")
        after = json.loads(populated.export_history())
        expected = json.loads(before)
        after.pop("exported_at")
        expected.pop("exported_at")
        assert after == expected


# =============================================================================
# Adoption
# =============================================================================


def _two_root_document(first_timestamp: str, second_timestamp: str) -> str:
    return json.dumps(
        {
            "format_version": FORMAT_VERSION,
            "nodes": [
                {"id": "r1", "snapshot": {"timestamp": first_timestamp}},
                {"id": "r2", "snapshot": {"timestamp": second_timestamp}},
            ],
            "branches": [],
            "current_node": "r2",
        }
    )


class TestEngineAdoption:
    """Engine import replaces its state all-or-nothing."""

    @pytest.mark.unit
    def test_mixed_timezone_document_is_adopted(self, populated):
        data = _two_root_document("2024-01-01T00:00:00Z", "2024-01-02T00:00:00")

        state = populated.import_history(data)

        assert list(state.nodes) == ["r1", "r2"]
        assert state.current_node == "r2"
        assert populated.undo_stack == ["r2"]
        assert populated.get_stats().root_count == 2
        assert all(n.timestamp.tzinfo is not None for n in state.nodes.values())

    @pytest.mark.unit
    def test_mixed_timezone_document_with_retention(self):
        engine = HistoryEngine(config=HistoryConfig(max_history_size=1))
        data = _two_root_document("2024-01-02T00:00:00Z", "2024-01-01T00:00:00")

        state = engine.import_history(data)

        assert list(state.nodes) == ["r1"]
        assert state.current_node is None

    @pytest.mark.unit
    def test_failure_while_adopting_leaves_state(self, populated, monkeypatch):
        before = _document(populated)
        current = populated.current_node
        undo_stack = populated.undo_stack
        data = _two_root_document("2024-01-01T00:00:00Z", "2024-01-02T00:00:00Z")

        def fail(store, node_id):
            raise RuntimeError("path lookup failed")

        monkeypatch.setattr(engine_module, "path_from_root", fail)
        with pytest.raises(RuntimeError):
            populated.import_history(data)

        after = _document(populated)
        before.pop("exported_at")
        after.pop("exported_at")
        assert after == before
        assert populated.current_node == current
        assert current in populated
        assert populated.undo_stack == undo_stack
