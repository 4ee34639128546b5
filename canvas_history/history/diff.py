"""Structural comparison of design snapshots.

Elements are matched by id: ids only in the second snapshot are added,
ids only in the first are removed, and ids in both whose type, position,
size or properties differ are modified. Viewport differences are reported
separately.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from canvas_history.snapshot import CanvasElement, DesignSnapshot, Viewport

from .models import NodeId


class ElementChangeType(str, Enum):
    """Kind of element change."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class ElementChange:
    """A single element difference.

    Attributes:
        type: Kind of change.
        element_id: Id of the element.
        element: The element after the change (before it, for REMOVED).
        previous: The element before the change (MODIFIED only).
    """

    type: ElementChangeType
    element_id: str
    element: CanvasElement
    previous: CanvasElement | None = None

    def changed_fields(self) -> list[str]:
        """Names of the fields that differ, for MODIFIED changes."""
        if self.previous is None:
            return []
        return [
            name
            for name in ("type", "position", "size", "properties")
            if getattr(self.previous, name) != getattr(self.element, name)
        ]


@dataclass(frozen=True)
class ViewportChange:
    """Viewport before and after."""

    from_viewport: Viewport
    to_viewport: Viewport


@dataclass
class Comparison:
    """Differences between two snapshots.

    Attributes:
        element_changes: Added, then removed, then modified elements.
        viewport_change: Viewport difference, if any.
        from_node: Node the first snapshot belongs to, if known.
        to_node: Node the second snapshot belongs to, if known.
        unchanged_count: Elements present and identical in both snapshots.
    """

    element_changes: list[ElementChange] = field(default_factory=list)
    viewport_change: ViewportChange | None = None
    from_node: NodeId | None = None
    to_node: NodeId | None = None
    unchanged_count: int = 0

    @property
    def has_changes(self) -> bool:
        return bool(self.element_changes) or self.viewport_change is not None

    def of_type(self, change_type: ElementChangeType) -> list[ElementChange]:
        return [c for c in self.element_changes if c.type == change_type]

    @property
    def added(self) -> list[ElementChange]:
        return self.of_type(ElementChangeType.ADDED)

    @property
    def removed(self) -> list[ElementChange]:
        return self.of_type(ElementChangeType.REMOVED)

    @property
    def modified(self) -> list[ElementChange]:
        return self.of_type(ElementChangeType.MODIFIED)

    @property
    def similarity(self) -> float:
        """Share of elements left untouched, from 0 (all changed) to 1."""
        total = self.unchanged_count + len(self.element_changes)
        if total == 0:
            return 1.0
        return self.unchanged_count / total

    def summary(self) -> dict[str, Any]:
        """Compact, JSON-friendly description of the comparison."""
        return {
            "from_node": self.from_node,
            "to_node": self.to_node,
            "has_changes": self.has_changes,
            "added": [c.element_id for c in self.added],
            "removed": [c.element_id for c in self.removed],
            "modified": {c.element_id: c.changed_fields() for c in self.modified},
            "viewport_changed": self.viewport_change is not None,
            "similarity": round(self.similarity, 4),
        }


def _elements_equal(first: CanvasElement, second: CanvasElement) -> bool:
    return (
        first.type == second.type
        and first.position == second.position
        and first.size == second.size
        and first.properties == second.properties
    )


def compare_elements(
    before: tuple[CanvasElement, ...],
    after: tuple[CanvasElement, ...],
) -> tuple[list[ElementChange], int]:
    """Diff two element lists by id.

    Returns:
        (changes, unchanged_count)
    """
    before_map = {element.id: element for element in before}
    after_map = {element.id: element for element in after}

    changes = [
        ElementChange(ElementChangeType.ADDED, element.id, element)
        for element in after
        if element.id not in before_map
    ]
    changes.extend(
        ElementChange(ElementChangeType.REMOVED, element.id, element)
        for element in before
        if element.id not in after_map
    )

    unchanged = 0
    for element in before:
        other = after_map.get(element.id)
        if other is None:
            continue
        if _elements_equal(element, other):
            unchanged += 1
        else:
            changes.append(
                ElementChange(ElementChangeType.MODIFIED, element.id, other, element)
            )

    return changes, unchanged


def compare_viewports(before: Viewport, after: Viewport) -> ViewportChange | None:
    """Viewport change if center, zoom or rotation differ."""
    if (
        before.center != after.center
        or before.zoom != after.zoom
        or before.rotation != after.rotation
    ):
        return ViewportChange(before, after)
    return None


def compare_snapshots(
    first: DesignSnapshot,
    second: DesignSnapshot,
    from_node: NodeId | None = None,
    to_node: NodeId | None = None,
) -> Comparison:
    """Compare two snapshots.

    Args:
        first: Snapshot treated as "before".
        second: Snapshot treated as "after".
        from_node: Node id of first, recorded on the result.
        to_node: Node id of second, recorded on the result.

    Returns:
        Comparison of elements and viewport.
    """
    changes, unchanged = compare_elements(first.elements, second.elements)
    return Comparison(
        element_changes=changes,
        viewport_change=compare_viewports(first.viewport, second.viewport),
        from_node=from_node,
        to_node=to_node,
        unchanged_count=unchanged,
    )


__all__ = [
    "ElementChangeType",
    "ElementChange",
    "ViewportChange",
    "Comparison",
    "compare_elements",
    "compare_viewports",
    "compare_snapshots",
]
