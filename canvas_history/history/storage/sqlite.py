"""SQLite storage backend for history persistence.

Each save rewrites the node, branch and scalar-state tables inside a
single transaction, so a reader never observes a half-written history.
"""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from canvas_history.snapshot import DesignSnapshot

from ..errors import ImportDecodeError, PersistenceError
from ..models import Branch, HistoryNode, HistoryState
from ..serialization import (
    FORMAT_VERSION,
    BranchRecord,
    HistoryDocument,
    NodeRecord,
    document_to_state,
    validate_document,
)

logger = logging.getLogger(__name__)

# SQL Schema
SCHEMA_SQL = """
-- Nodes table; sequence preserves creation order
CREATE TABLE IF NOT EXISTS history_nodes (
    id TEXT PRIMARY KEY,
    sequence INTEGER NOT NULL,
    snapshot TEXT NOT NULL,  -- JSON
    parents TEXT NOT NULL,  -- JSON array
    branch_label TEXT,
    bookmarked INTEGER DEFAULT 0,
    tags TEXT,  -- JSON array
    description TEXT DEFAULT '',
    timestamp TEXT NOT NULL
);

-- Branches table
CREATE TABLE IF NOT EXISTS history_branches (
    id TEXT PRIMARY KEY,
    sequence INTEGER NOT NULL,
    name TEXT NOT NULL,
    start_node TEXT NOT NULL,
    color_tag TEXT,
    active INTEGER DEFAULT 0,
    description TEXT DEFAULT '',
    created_at TEXT NOT NULL,
    node_sequence TEXT NOT NULL  -- JSON array
);

-- Scalar state (current node, active branch, format version)
CREATE TABLE IF NOT EXISTS history_state (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE INDEX IF NOT EXISTS idx_history_nodes_sequence ON history_nodes(sequence);
CREATE INDEX IF NOT EXISTS idx_history_nodes_timestamp ON history_nodes(timestamp);
CREATE INDEX IF NOT EXISTS idx_history_branches_sequence ON history_branches(sequence);
"""


class SQLiteStorage:
    """SQLite-based storage backend.

    Args:
        db_path: Path to SQLite database file (":memory:" for a private
            in-memory database).
    """

    def __init__(self, db_path: Path | str):
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection, failing if not initialized."""
        if self._conn is None:
            raise PersistenceError("Storage not initialized. Call initialize() first.")
        return self._conn

    def initialize(self) -> None:
        """Initialize storage (create database file, tables, indexes)."""
        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            if isinstance(self.db_path, Path):
                self._conn.execute("PRAGMA journal_mode = WAL")
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(
                f"Cannot open history database {self.db_path}: {e}"
            ) from e

        logger.info(f"Initialized SQLite storage at {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # =========================================================================
    # Save / Load
    # =========================================================================

    def save(self, state: HistoryState) -> None:
        """Replace the stored history with state."""
        conn = self._get_conn()
        node_rows = [
            self._node_to_row(node, index)
            for index, node in enumerate(state.nodes.values())
        ]
        branch_rows = [
            self._branch_to_row(branch, index)
            for index, branch in enumerate(state.branches.values())
        ]
        scalar_rows = [
            ("format_version", FORMAT_VERSION),
            ("current_node", state.current_node),
            ("active_branch", state.active_branch),
        ]

        try:
            with conn:
                conn.execute("DELETE FROM history_nodes")
                conn.execute("DELETE FROM history_branches")
                conn.execute("DELETE FROM history_state")
                conn.executemany(
                    """
                    INSERT INTO history_nodes (
                        id, sequence, snapshot, parents, branch_label,
                        bookmarked, tags, description, timestamp
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    node_rows,
                )
                conn.executemany(
                    """
                    INSERT INTO history_branches (
                        id, sequence, name, start_node, color_tag, active,
                        description, created_at, node_sequence
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    branch_rows,
                )
                conn.executemany(
                    "INSERT INTO history_state (key, value) VALUES (?, ?)",
                    scalar_rows,
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to save history: {e}") from e

        logger.debug(
            f"Saved {len(node_rows)} nodes and {len(branch_rows)} branches "
            f"to {self.db_path}"
        )

    def load(self) -> HistoryState | None:
        """Load the stored history, or None if the database is empty."""
        conn = self._get_conn()
        try:
            node_rows = conn.execute(
                "SELECT * FROM history_nodes ORDER BY sequence"
            ).fetchall()
            branch_rows = conn.execute(
                "SELECT * FROM history_branches ORDER BY sequence"
            ).fetchall()
            scalars = {
                row["key"]: row["value"]
                for row in conn.execute("SELECT key, value FROM history_state")
            }
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to load history: {e}") from e

        if not node_rows and not branch_rows:
            return None

        try:
            document = HistoryDocument(
                format_version=scalars.get("format_version") or FORMAT_VERSION,
                nodes=[self._row_to_node_record(row) for row in node_rows],
                branches=[self._row_to_branch_record(row) for row in branch_rows],
                current_node=scalars.get("current_node"),
                active_branch=scalars.get("active_branch"),
            )
            validate_document(document)
        except (ValidationError, ValueError, ImportDecodeError) as e:
            raise PersistenceError(f"Stored history is inconsistent: {e}") from e

        logger.debug(
            f"Loaded {len(node_rows)} nodes and {len(branch_rows)} branches "
            f"from {self.db_path}"
        )
        return document_to_state(document)

    # =========================================================================
    # Row conversion
    # =========================================================================

    def _node_to_row(self, node: HistoryNode, sequence: int) -> tuple:
        return (
            node.id,
            sequence,
            node.snapshot.model_dump_json(),
            json.dumps(sorted(node.parents)),
            node.branch_label,
            int(node.bookmarked),
            json.dumps(sorted(node.tags)),
            node.description,
            node.timestamp.isoformat(),
        )

    def _branch_to_row(self, branch: Branch, sequence: int) -> tuple:
        return (
            branch.id,
            sequence,
            branch.name,
            branch.start_node,
            branch.color_tag,
            int(branch.active),
            branch.description,
            branch.created_at.isoformat(),
            json.dumps(branch.node_sequence),
        )

    def _row_to_node_record(self, row: sqlite3.Row) -> NodeRecord:
        """Convert database row to a node record."""
        return NodeRecord(
            id=row["id"],
            snapshot=DesignSnapshot.model_validate_json(row["snapshot"]),
            parents=json.loads(row["parents"]),
            branch_label=row["branch_label"],
            bookmarked=bool(row["bookmarked"]),
            tags=json.loads(row["tags"]) if row["tags"] else [],
            description=row["description"] or "",
        )

    def _row_to_branch_record(self, row: sqlite3.Row) -> BranchRecord:
        """Convert database row to a branch record."""
        return BranchRecord(
            id=row["id"],
            name=row["name"],
            start_node=row["start_node"],
            color_tag=row["color_tag"],
            active=bool(row["active"]),
            description=row["description"] or "",
            created_at=datetime.fromisoformat(row["created_at"]),
            node_sequence=json.loads(row["node_sequence"]),
        )


__all__ = ["SQLiteStorage"]
