"""Tests for snapshot comparison."""

import random

import pytest

from canvas_history.snapshot import CanvasElement, DesignSnapshot, Point, Size, Viewport

from .diff import ElementChangeType, compare_snapshots


def _snapshot(*elements: CanvasElement, zoom: float = 1.0) -> DesignSnapshot:
    return DesignSnapshot.create(elements=list(elements), viewport=Viewport(zoom=zoom))


class TestCompareSnapshots:
    """Tests for compare_snapshots."""

    @pytest.mark.unit
    def test_identical_snapshots(self):
        snapshot = _snapshot(CanvasElement(id="a"), CanvasElement(id="b"))
        comparison = compare_snapshots(snapshot, snapshot)
        assert not comparison.has_changes
        assert comparison.similarity == 1.0

    @pytest.mark.unit
    def test_empty_snapshots(self):
        comparison = compare_snapshots(_snapshot(), _snapshot())
        assert not comparison.has_changes
        assert comparison.similarity == 1.0

    @pytest.mark.unit
    def test_grouping_order(self):
        before = _snapshot(
            CanvasElement(id="keep"),
            CanvasElement(id="gone"),
            CanvasElement(id="moved"),
        )
        after = _snapshot(
            CanvasElement(id="new2"),
            CanvasElement(id="moved", position=Point(x=5, y=5)),
            CanvasElement(id="keep"),
            CanvasElement(id="new1"),
        )
        comparison = compare_snapshots(before, after)

        assert [(c.type, c.element_id) for c in comparison.element_changes] == [
            (ElementChangeType.ADDED, "new2"),
            (ElementChangeType.ADDED, "new1"),
            (ElementChangeType.REMOVED, "gone"),
            (ElementChangeType.MODIFIED, "moved"),
        ]
        assert comparison.unchanged_count == 1

    @pytest.mark.unit
    def test_modified_carries_before_and_after(self):
        before = _snapshot(CanvasElement(id="a", size=Size(width=10, height=10)))
        after = _snapshot(
            CanvasElement(id="a", size=Size(width=20, height=10), properties={"x": "1"})
        )
        (change,) = compare_snapshots(before, after).modified
        assert change.previous.size.width == 10
        assert change.element.size.width == 20
        assert change.changed_fields() == ["size", "properties"]

    @pytest.mark.unit
    def test_type_change_is_modification(self):
        before = _snapshot(CanvasElement(id="a", type="text"))
        after = _snapshot(CanvasElement(id="a", type="image"))
        comparison = compare_snapshots(before, after)
        assert [c.element_id for c in comparison.modified] == ["a"]

    @pytest.mark.unit
    def test_reordering_is_not_a_change(self):
        before = _snapshot(CanvasElement(id="a"), CanvasElement(id="b"))
        after = _snapshot(CanvasElement(id="b"), CanvasElement(id="a"))
        assert not compare_snapshots(before, after).has_changes

    @pytest.mark.unit
    def test_viewport_change(self):
        comparison = compare_snapshots(_snapshot(zoom=1.0), _snapshot(zoom=2.0))
        assert comparison.has_changes
        assert comparison.element_changes == []
        assert comparison.viewport_change.from_viewport.zoom == 1.0
        assert comparison.viewport_change.to_viewport.zoom == 2.0

    @pytest.mark.unit
    def test_summary(self):
        before = _snapshot(CanvasElement(id="a"), CanvasElement(id="b"))
        after = _snapshot(CanvasElement(id="a", type="text"), CanvasElement(id="c"))
        summary = compare_snapshots(before, after, "n1", "n2").summary()
        assert summary == {
            "from_node": "n1",
            "to_node": "n2",
            "has_changes": True,
            "added": ["c"],
            "removed": ["b"],
            "modified": {"a": ["type"]},
            "viewport_changed": False,
            "similarity": 0.0,
        }

    @pytest.mark.unit
    def test_symmetry_on_random_snapshots(self):
        """Added and removed swap when arguments swap; no-change iff same content."""
        rng = random.Random(42)
        pool = [f"e{i}" for i in range(12)]

        def random_snapshot() -> DesignSnapshot:
            ids = rng.sample(pool, k=rng.randint(0, len(pool)))
            return _snapshot(
                *[
                    CanvasElement(id=i, position=Point(x=rng.randint(0, 2), y=0))
                    for i in ids
                ],
                zoom=rng.choice([1.0, 2.0]),
            )

        for _ in range(200):
            a, b = random_snapshot(), random_snapshot()
            forward = compare_snapshots(a, b)
            backward = compare_snapshots(b, a)

            assert {c.element_id for c in forward.added} == {
                c.element_id for c in backward.removed
            }
            assert {c.element_id for c in forward.removed} == {
                c.element_id for c in backward.added
            }
            assert {c.element_id for c in forward.modified} == {
                c.element_id for c in backward.modified
            }
            assert forward.has_changes == (not a.same_content(b))
            assert not compare_snapshots(a, a).has_changes
