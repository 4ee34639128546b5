"""Tests for design snapshot values."""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from .lib import (
    CanvasElement,
    DesignSnapshot,
    Point,
    Size,
    SnapshotSource,
    Viewport,
    as_utc,
)


class TestCanvasElement:
    """Tests for element validation."""

    @pytest.mark.unit
    def test_defaults(self):
        element = CanvasElement(id="box")
        assert element.type == "shape"
        assert element.position == Point()
        assert element.size == Size()
        assert element.properties == {}

    @pytest.mark.unit
    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            CanvasElement(id="")

    @pytest.mark.unit
    def test_negative_size_rejected(self):
        with pytest.raises(ValidationError):
            Size(width=-1, height=10)

    @pytest.mark.unit
    def test_elements_are_frozen(self):
        element = CanvasElement(id="box")
        with pytest.raises(ValidationError):
            element.type = "text"


class TestViewport:
    """Tests for viewport validation."""

    @pytest.mark.unit
    def test_zoom_must_be_positive(self):
        with pytest.raises(ValidationError):
            Viewport(zoom=0)

    @pytest.mark.unit
    def test_equality_is_structural(self):
        assert Viewport(center=Point(x=1, y=2), zoom=2.0) == Viewport(
            center=Point(x=1, y=2), zoom=2.0
        )


class TestDesignSnapshot:
    """Tests for DesignSnapshot."""

    @pytest.mark.unit
    def test_create_factory(self):
        snapshot = DesignSnapshot.create(
            elements=[CanvasElement(id="a"), CanvasElement(id="b")],
            source=SnapshotSource.AI,
        )
        assert [e.id for e in snapshot.elements] == ["a", "b"]
        assert snapshot.viewport == Viewport()
        assert snapshot.source == SnapshotSource.AI
        assert snapshot.timestamp.tzinfo is not None

    @pytest.mark.unit
    def test_duplicate_element_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate element id"):
            DesignSnapshot.create(
                elements=[CanvasElement(id="a"), CanvasElement(id="a", type="text")]
            )

    @pytest.mark.unit
    def test_get_element(self):
        snapshot = DesignSnapshot.create(elements=[CanvasElement(id="a", type="text")])
        assert snapshot.get_element("a").type == "text"
        assert snapshot.get_element("missing") is None

    @pytest.mark.unit
    def test_same_content_ignores_order_timestamp_and_source(self):
        first = DesignSnapshot.create(
            elements=[CanvasElement(id="a"), CanvasElement(id="b")],
            timestamp=datetime(2024, 1, 1, tzinfo=UTC),
        )
        second = DesignSnapshot.create(
            elements=[CanvasElement(id="b"), CanvasElement(id="a")],
            timestamp=datetime(2025, 1, 1, tzinfo=UTC),
            source=SnapshotSource.IMPORT,
            metadata={"prompt": "swap"},
        )
        assert first.same_content(second)
        assert first != second

    @pytest.mark.unit
    def test_same_content_detects_viewport_change(self):
        first = DesignSnapshot.create()
        second = DesignSnapshot.create(viewport=Viewport(zoom=2.0))
        assert not first.same_content(second)

    @pytest.mark.unit
    def test_with_elements_keeps_viewport_and_refreshes_timestamp(self):
        base = DesignSnapshot.create(
            viewport=Viewport(zoom=3.0),
            timestamp=datetime(2024, 1, 1, tzinfo=UTC),
        )
        derived = base.with_elements([CanvasElement(id="new")])
        assert derived.viewport.zoom == 3.0
        assert derived.timestamp > base.timestamp
        assert base.elements == ()

    @pytest.mark.unit
    def test_json_round_trip(self):
        snapshot = DesignSnapshot.create(
            elements=[
                CanvasElement(
                    id="title",
                    type="text",
                    position=Point(x=4, y=8),
                    properties={"text": "Hello"},
                )
            ],
            metadata={"prompt": "hero"},
        )
        restored = DesignSnapshot.model_validate_json(snapshot.model_dump_json())
        assert restored == snapshot

    @pytest.mark.unit
    def test_with_elements_revalidates(self):
        base = DesignSnapshot.create(metadata={"prompt": "hero"})
        derived = base.with_elements(
            [CanvasElement(id="a")], timestamp=datetime(2024, 1, 1)
        )
        assert derived.timestamp == datetime(2024, 1, 1, tzinfo=UTC)
        assert derived.metadata == {"prompt": "hero"}
        with pytest.raises(ValidationError, match="Duplicate element id"):
            base.with_elements([CanvasElement(id="a"), CanvasElement(id="a")])


class TestTimestamps:
    """Timestamps are stored as aware UTC values."""

    @pytest.mark.unit
    def test_naive_timestamp_is_taken_as_utc(self):
        snapshot = DesignSnapshot.create(timestamp=datetime(2024, 1, 2, 9, 30))
        assert snapshot.timestamp == datetime(2024, 1, 2, 9, 30, tzinfo=UTC)
        assert snapshot.timestamp.tzinfo is UTC

    @pytest.mark.unit
    def test_offset_timestamp_is_converted(self):
        plus_two = timezone(timedelta(hours=2))
        snapshot = DesignSnapshot.create(
            timestamp=datetime(2024, 1, 1, 12, 0, tzinfo=plus_two)
        )
        assert snapshot.timestamp.tzinfo is UTC
        assert snapshot.timestamp.hour == 10

    @pytest.mark.unit
    def test_mixed_json_timestamps_are_comparable(self):
        aware = DesignSnapshot.model_validate_json(
            '{"timestamp": "2024-01-01T00:00:00Z"}'
        )
        naive = DesignSnapshot.model_validate_json(
            '{"timestamp": "2024-01-02T00:00:00"}'
        )
        assert aware.timestamp < naive.timestamp

    @pytest.mark.unit
    def test_as_utc(self):
        assert as_utc(datetime(2024, 1, 1)).tzinfo is UTC


class TestImmutability:
    """Recorded snapshots cannot be changed through their mappings."""

    @pytest.mark.unit
    def test_properties_are_read_only(self):
        element = CanvasElement(id="a", properties={"fill": "#fff"})
        with pytest.raises(TypeError):
            element.properties["fill"] = "#000"
        assert element.properties == {"fill": "#fff"}
        with pytest.raises(TypeError):
            CanvasElement(id="b").properties["fill"] = "#000"

    @pytest.mark.unit
    def test_metadata_is_read_only(self):
        snapshot = DesignSnapshot.create(metadata={"prompt": "hero"})
        with pytest.raises(TypeError):
            snapshot.metadata["prompt"] = "changed"

    @pytest.mark.unit
    def test_caller_dict_is_copied(self):
        properties = {"fill": "#fff"}
        element = CanvasElement(id="a", properties=properties)
        properties["fill"] = "#000"
        assert element.properties["fill"] == "#fff"

    @pytest.mark.unit
    def test_dump_returns_plain_dicts(self):
        snapshot = DesignSnapshot.create(
            elements=[CanvasElement(id="a", properties={"fill": "#fff"})],
            metadata={"prompt": "hero"},
        )
        dumped = snapshot.model_dump()
        assert type(dumped["metadata"]) is dict
        assert type(dumped["elements"][0]["properties"]) is dict
