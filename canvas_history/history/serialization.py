"""Export/import codec for history graphs.

The document is UTF-8 JSON described by pydantic models. Decoding checks
the schema first and the graph structure second; any violation raises
ImportDecodeError so callers can adopt a decoded state all-or-nothing.
"""

import logging
from datetime import UTC, datetime

from pydantic import BaseModel, Field, ValidationError, field_validator

from canvas_history.snapshot import DesignSnapshot, as_utc

from .errors import ImportDecodeError
from .models import BRANCH_COLORS, Branch, BranchId, HistoryNode, HistoryState, NodeId

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"
SUPPORTED_VERSIONS = frozenset({FORMAT_VERSION})


class NodeRecord(BaseModel):
    """Serialized history node. Children are implied by parents."""

    id: str = Field(..., min_length=1)
    snapshot: DesignSnapshot
    parents: list[str] = Field(default_factory=list)
    branch_label: str | None = None
    bookmarked: bool = False
    tags: list[str] = Field(default_factory=list)
    description: str = ""


class BranchRecord(BaseModel):
    """Serialized branch."""

    id: str = Field(..., min_length=1)
    name: str
    start_node: str = Field(..., min_length=1)
    color_tag: str = BRANCH_COLORS[0]
    active: bool = False
    description: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    node_sequence: list[str] = Field(default_factory=list)

    _utc_created_at = field_validator("created_at")(as_utc)


class HistoryDocument(BaseModel):
    """Top-level export document."""

    format_version: str = FORMAT_VERSION
    exported_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    nodes: list[NodeRecord] = Field(default_factory=list)
    branches: list[BranchRecord] = Field(default_factory=list)
    current_node: str | None = None
    active_branch: str | None = None


# =============================================================================
# Encoding
# =============================================================================


def node_to_record(node: HistoryNode) -> NodeRecord:
    return NodeRecord(
        id=node.id,
        snapshot=node.snapshot,
        parents=sorted(node.parents),
        branch_label=node.branch_label,
        bookmarked=node.bookmarked,
        tags=sorted(node.tags),
        description=node.description,
    )


def branch_to_record(branch: Branch) -> BranchRecord:
    return BranchRecord(
        id=branch.id,
        name=branch.name,
        start_node=branch.start_node,
        color_tag=branch.color_tag,
        active=branch.active,
        description=branch.description,
        created_at=branch.created_at,
        node_sequence=list(branch.node_sequence),
    )


def state_to_document(state: HistoryState) -> HistoryDocument:
    """Build an export document; node order is creation order."""
    return HistoryDocument(
        nodes=[node_to_record(node) for node in state.nodes.values()],
        branches=[branch_to_record(branch) for branch in state.branches.values()],
        current_node=state.current_node,
        active_branch=state.active_branch,
    )


def export_history(state: HistoryState, indent: int | None = None) -> bytes:
    """Serialize a state to UTF-8 JSON bytes."""
    document = state_to_document(state)
    return document.model_dump_json(indent=indent).encode("utf-8")


# =============================================================================
# Decoding
# =============================================================================


def parse_document(data: bytes | str) -> HistoryDocument:
    """Parse and schema-validate a document.

    Raises:
        ImportDecodeError: If the payload is not a valid document.
    """
    try:
        document = HistoryDocument.model_validate_json(data)
    except (ValidationError, ValueError) as e:
        raise ImportDecodeError(f"Invalid history document: {e}") from e

    if document.format_version not in SUPPORTED_VERSIONS:
        raise ImportDecodeError(
            f"Unsupported format version: {document.format_version}"
        )
    return document


def _check_acyclic(records: list[NodeRecord]) -> None:
    indegree = {record.id: len(set(record.parents)) for record in records}
    children: dict[str, list[str]] = {record.id: [] for record in records}
    for record in records:
        for parent_id in set(record.parents):
            children[parent_id].append(record.id)

    ready = [node_id for node_id, degree in indegree.items() if degree == 0]
    visited = 0
    while ready:
        current = ready.pop()
        visited += 1
        for child_id in children[current]:
            indegree[child_id] -= 1
            if indegree[child_id] == 0:
                ready.append(child_id)

    if visited != len(records):
        raise ImportDecodeError("History graph contains a cycle")


def validate_document(document: HistoryDocument) -> None:
    """Check the structural invariants of a parsed document.

    Raises:
        ImportDecodeError: On duplicate ids, dangling references, cycles
            or malformed branches.
    """
    node_ids: set[str] = set()
    for record in document.nodes:
        if record.id in node_ids:
            raise ImportDecodeError(f"Duplicate node id: {record.id}")
        node_ids.add(record.id)

    for record in document.nodes:
        for parent_id in record.parents:
            if parent_id not in node_ids:
                raise ImportDecodeError(
                    f"Node {record.id} references missing parent {parent_id}"
                )
            if parent_id == record.id:
                raise ImportDecodeError(f"Node {record.id} is its own parent")

    _check_acyclic(document.nodes)

    branch_ids: set[str] = set()
    for branch in document.branches:
        if branch.id in branch_ids:
            raise ImportDecodeError(f"Duplicate branch id: {branch.id}")
        branch_ids.add(branch.id)

        if branch.node_sequence and branch.node_sequence[0] != branch.start_node:
            raise ImportDecodeError(
                f"Branch {branch.id} sequence does not start at {branch.start_node}"
            )
        if len(set(branch.node_sequence)) != len(branch.node_sequence):
            raise ImportDecodeError(f"Branch {branch.id} repeats a node")

        # A branch opened with no current node holds a reserved start id
        # that the next recorded snapshot will take.
        reserved = branch.start_node not in node_ids and branch.node_sequence in (
            [],
            [branch.start_node],
        )
        if reserved:
            continue
        for node_id in branch.node_sequence or [branch.start_node]:
            if node_id not in node_ids:
                raise ImportDecodeError(
                    f"Branch {branch.id} references missing node {node_id}"
                )

    if document.current_node is not None and document.current_node not in node_ids:
        raise ImportDecodeError(
            f"Current node {document.current_node} is not in the document"
        )
    if document.active_branch is not None and document.active_branch not in branch_ids:
        raise ImportDecodeError(
            f"Active branch {document.active_branch} is not in the document"
        )


def document_to_state(document: HistoryDocument) -> HistoryState:
    """Rebuild records from a validated document.

    Children sets are derived from parents so edges are always mutual.
    The result's can_undo/can_redo are left False; the engine recomputes
    them after rebuilding its stacks.
    """
    nodes = [
        HistoryNode(
            id=NodeId(record.id),
            snapshot=record.snapshot,
            parents={NodeId(p) for p in record.parents},
            branch_label=record.branch_label,
            bookmarked=record.bookmarked,
            tags=set(record.tags),
            description=record.description,
        )
        for record in document.nodes
    ]
    by_id = {node.id: node for node in nodes}
    for node in nodes:
        for parent_id in node.parents:
            by_id[parent_id].add_child(node.id)

    branches = [
        Branch(
            id=BranchId(record.id),
            name=record.name,
            start_node=NodeId(record.start_node),
            color_tag=record.color_tag,
            node_sequence=[NodeId(n) for n in record.node_sequence],
            active=record.id == document.active_branch,
            description=record.description,
            created_at=record.created_at,
        )
        for record in document.branches
    ]

    return HistoryState.build(
        nodes=nodes,
        branches=branches,
        current_node=NodeId(document.current_node) if document.current_node else None,
        active_branch=(
            BranchId(document.active_branch) if document.active_branch else None
        ),
    )


def import_history(data: bytes | str) -> HistoryState:
    """Decode and validate an export document.

    Args:
        data: UTF-8 JSON produced by export_history.

    Returns:
        The decoded state.

    Raises:
        ImportDecodeError: If the document is malformed.
    """
    document = parse_document(data)
    validate_document(document)
    logger.debug(
        f"Decoded history document: {len(document.nodes)} nodes, "
        f"{len(document.branches)} branches"
    )
    return document_to_state(document)


__all__ = [
    "FORMAT_VERSION",
    "NodeRecord",
    "BranchRecord",
    "HistoryDocument",
    "export_history",
    "import_history",
    "parse_document",
    "validate_document",
    "state_to_document",
    "document_to_state",
]
