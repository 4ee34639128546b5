"""Snapshot values for canvas-history.

Example:
    >>> from canvas_history.snapshot import CanvasElement, DesignSnapshot, Point
    >>> snapshot = DesignSnapshot.create(
    ...     elements=[
    ...         CanvasElement(id="title", type="text", position=Point(x=10, y=20)),
    ...     ],
    ... )
    >>> snapshot.get_element("title").type
    'text'
"""

from .lib import (
    CanvasElement,
    DesignSnapshot,
    Point,
    Size,
    SnapshotSource,
    Viewport,
    as_utc,
)

__all__ = [
    "CanvasElement",
    "DesignSnapshot",
    "Point",
    "Size",
    "SnapshotSource",
    "Viewport",
    "as_utc",
]
