"""Design snapshot values recorded by the history engine.

A snapshot is the complete state of the edited canvas at one instant:
an ordered list of elements, a viewport, and a timestamp. Snapshots are
frozen pydantic models so they can be shared between history nodes,
state copies and export documents without defensive copying.
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


def as_utc(value: datetime) -> datetime:
    """Convert to an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _freeze(value: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(value))


class SnapshotSource(str, Enum):
    """Origin of a snapshot.

    - USER: Produced by a direct edit on the canvas
    - AI: Alternate design proposed by a generative provider
    - IMPORT: Loaded from an external document
    - FORK: Copied from another point in history
    """

    USER = "user"
    AI = "ai"
    IMPORT = "import"
    FORK = "fork"


class Point(BaseModel):
    """A position on the canvas."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0


class Size(BaseModel):
    """Width and height of an element."""

    model_config = ConfigDict(frozen=True)

    width: float = Field(default=0.0, ge=0)
    height: float = Field(default=0.0, ge=0)


class CanvasElement(BaseModel):
    """A single element placed on the canvas.

    Attributes:
        id: Identifier, unique within one snapshot.
        type: Element kind (text, image, shape, ...).
        position: Top-left position.
        size: Bounding box size.
        properties: Free-form styling and content attributes.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    type: str = "shape"
    position: Point = Field(default_factory=Point)
    size: Size = Field(default_factory=Size)
    properties: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    _freeze_properties = field_validator("properties")(_freeze)

    @field_serializer("properties")
    def _dump_properties(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)


class Viewport(BaseModel):
    """Camera over the canvas."""

    model_config = ConfigDict(frozen=True)

    center: Point = Field(default_factory=Point)
    zoom: float = Field(default=1.0, gt=0)
    rotation: float = 0.0


class DesignSnapshot(BaseModel):
    """Immutable design state at one point in time.

    Attributes:
        canvas_id: Canvas the snapshot was taken from.
        elements: Ordered elements (z-order), ids unique.
        viewport: Viewport at capture time.
        timestamp: Capture time (UTC); orders retention eviction.
        source: Who produced the snapshot.
        metadata: Free-form annotations from the producer (e.g. AI prompt).
    """

    model_config = ConfigDict(frozen=True)

    canvas_id: str = "canvas"
    elements: tuple[CanvasElement, ...] = ()
    viewport: Viewport = Field(default_factory=Viewport)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: SnapshotSource = SnapshotSource.USER
    metadata: Mapping[str, str] = Field(default_factory=dict, validate_default=True)

    _freeze_metadata = field_validator("metadata")(_freeze)
    _utc_timestamp = field_validator("timestamp")(as_utc)

    @field_serializer("metadata")
    def _dump_metadata(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    @model_validator(mode="after")
    def _unique_element_ids(self) -> "DesignSnapshot":
        seen: set[str] = set()
        for element in self.elements:
            if element.id in seen:
                raise ValueError(f"Duplicate element id: {element.id}")
            seen.add(element.id)
        return self

    @classmethod
    def create(
        cls,
        elements: list[CanvasElement] | None = None,
        viewport: Viewport | None = None,
        **kwargs: Any,
    ) -> "DesignSnapshot":
        """Factory method to build a snapshot from element lists."""
        return cls(
            elements=tuple(elements or ()),
            viewport=viewport or Viewport(),
            **kwargs,
        )

    def element_map(self) -> dict[str, CanvasElement]:
        """Index elements by id."""
        return {element.id: element for element in self.elements}

    def get_element(self, element_id: str) -> CanvasElement | None:
        """Get an element by id, or None."""
        return self.element_map().get(element_id)

    def same_content(self, other: "DesignSnapshot") -> bool:
        """Compare design content only.

        Elements are compared by id regardless of order; timestamp,
        source and metadata are ignored.
        """
        return (
            self.viewport == other.viewport
            and self.element_map() == other.element_map()
        )

    def with_elements(
        self,
        elements: list[CanvasElement],
        **kwargs: Any,
    ) -> "DesignSnapshot":
        """Derive a new snapshot with replaced elements and a fresh timestamp.

        The result is validated like a newly built snapshot.
        """
        data: dict[str, Any] = dict(self)
        data.update(elements=tuple(elements), timestamp=datetime.now(UTC))
        data.update(kwargs)
        return self.model_validate(data)


__all__ = [
    "as_utc",
    "SnapshotSource",
    "Point",
    "Size",
    "CanvasElement",
    "Viewport",
    "DesignSnapshot",
]
