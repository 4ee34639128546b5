"""canvas-history: Versioned history graph for canvas design snapshots."""

from canvas_history.history import (
    HistoryConfig,
    HistoryEngine,
    HistoryError,
    open_history_engine,
)
from canvas_history.snapshot import CanvasElement, DesignSnapshot, Viewport

__version__ = "0.1.0"

__all__ = [
    # Snapshots
    "DesignSnapshot",
    "CanvasElement",
    "Viewport",
    # History
    "HistoryEngine",
    "HistoryConfig",
    "HistoryError",
    "open_history_engine",
]
