"""Root pytest configuration and fixtures.

This module provides:
- Environment setup (loads .env)
- Snapshot factories shared by the test suites
- History engine fixtures (in-memory and SQLite-backed)
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Generator

import pytest
from dotenv import load_dotenv

from canvas_history.history import HistoryConfig, HistoryEngine
from canvas_history.snapshot import (
    CanvasElement,
    DesignSnapshot,
    Point,
    Size,
    SnapshotSource,
    Viewport,
)

# Load environment variables from .env file
load_dotenv()


# =============================================================================
# Configuration Constants
# =============================================================================

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


# =============================================================================
# Snapshot Fixtures
# =============================================================================


def build_snapshot(
    *element_ids: str,
    seconds: int = 0,
    zoom: float = 1.0,
    source: SnapshotSource = SnapshotSource.USER,
) -> DesignSnapshot:
    """Build a snapshot with one shape per id, stamped BASE_TIME + seconds."""
    elements = [
        CanvasElement(
            id=element_id,
            type="shape",
            position=Point(x=10.0 * index, y=5.0 * index),
            size=Size(width=100, height=40),
            properties={"fill": "#ffffff"},
        )
        for index, element_id in enumerate(element_ids)
    ]
    return DesignSnapshot.create(
        elements=elements,
        viewport=Viewport(zoom=zoom),
        timestamp=BASE_TIME + timedelta(seconds=seconds),
        source=source,
    )


@pytest.fixture
def make_snapshot() -> Callable[..., DesignSnapshot]:
    """Factory producing snapshots with strictly increasing timestamps.

    Returns:
        Callable taking element ids (and optional zoom/source keywords).
    """
    counter = {"seconds": 0}

    def _make(*element_ids: str, **kwargs) -> DesignSnapshot:
        counter["seconds"] += 1
        kwargs.setdefault("seconds", counter["seconds"])
        return build_snapshot(*element_ids, **kwargs)

    return _make


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def engine() -> Generator[HistoryEngine, None, None]:
    """Create an unpersisted HistoryEngine."""
    eng = HistoryEngine()
    yield eng
    eng.close()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to a fresh SQLite history database."""
    return tmp_path / "history" / "test_history.db"


@pytest.fixture
def sqlite_engine(db_path: Path) -> Generator[HistoryEngine, None, None]:
    """Create a HistoryEngine persisted to a temporary SQLite database."""
    eng = HistoryEngine(db_path=db_path, config=HistoryConfig(max_history_size=50))
    yield eng
    eng.close()
