"""Domain models for the folderkb storage layer.

Every persisted entity carries the ``Scope`` it was created in. Nothing is
ever looked up or returned outside that scope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from folderkb.errors import ValidationError

# Upper bound on the free-form ``extra`` map of any metadata variant.
MAX_EXTRA_KEYS = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Scope:
    """Isolation boundary: a folder owned by one user.

    Attributes:
        folder_id: Non-negative folder identifier.
        owner_id: Identifier of the owning user (non-empty).
    """

    folder_id: int
    owner_id: str

    def __post_init__(self) -> None:
        if isinstance(self.folder_id, bool) or not isinstance(self.folder_id, int):
            raise ValidationError(f"folder_id must be an int, got {self.folder_id!r}")
        if self.folder_id < 0:
            raise ValidationError(f"folder_id must be >= 0, got {self.folder_id}")
        if not isinstance(self.owner_id, str) or not self.owner_id.strip():
            raise ValidationError(f"owner_id must be a non-empty string, got {self.owner_id!r}")

    def __str__(self) -> str:
        return f"{self.folder_id}:{self.owner_id}"


class DocumentType(str, Enum):
    TEXT = "text"
    CODE = "code"
    MARKDOWN = "markdown"
    JSON = "json"
    URL = "url"
    PDF = "pdf"


class NodeType(str, Enum):
    DOCUMENT = "document"
    CONCEPT = "concept"
    ENTITY = "entity"
    TOPIC = "topic"


class EdgeType(str, Enum):
    CONTAINS = "contains"
    RELATES_TO = "relates_to"
    REFERENCES = "references"
    DERIVED_FROM = "derived_from"


def _check_extra(extra: dict[str, Any]) -> None:
    if len(extra) > MAX_EXTRA_KEYS:
        raise ValidationError(
            f"metadata.extra holds {len(extra)} keys; at most {MAX_EXTRA_KEYS} are allowed"
        )
    for key in extra:
        if not isinstance(key, str):
            raise ValidationError(f"metadata.extra keys must be strings, got {key!r}")


# ---------------------------------------------------------------------------
# Metadata variants
# ---------------------------------------------------------------------------


@dataclass
class DocumentMetadata:
    original_file: str | None = None
    mime_type: str = "text/plain"
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_extra(self.extra)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_file": self.original_file,
            "mime_type": self.mime_type,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentMetadata:
        return cls(
            original_file=data.get("original_file"),
            mime_type=data.get("mime_type", "text/plain"),
            extra=dict(data.get("extra") or {}),
        )


@dataclass
class ChunkMetadata:
    document_name: str = ""
    document_type: DocumentType = DocumentType.TEXT
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _check_extra(self.extra)

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_name": self.document_name,
            "document_type": self.document_type.value,
            "extra": dict(self.extra),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChunkMetadata:
        return cls(
            document_name=data.get("document_name", ""),
            document_type=DocumentType(data.get("document_type", "text")),
            extra=dict(data.get("extra") or {}),
        )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass
class Document:
    id: str
    scope: Scope
    name: str
    type: DocumentType
    content: str
    size: int
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Chunk:
    id: str
    document_id: str
    scope: Scope
    content: str
    start_offset: int
    end_offset: int
    chunk_index: int
    token_count: int
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Embedding:
    """Vector for one chunk; ``id`` is always the chunk id."""

    id: str
    document_id: str
    scope: Scope
    vector: list[float]
    model: str
    created_at: datetime = field(default_factory=utcnow)

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass
class KnowledgeNode:
    id: str
    type: NodeType
    label: str
    content: str = ""
    document_ids: list[str] = field(default_factory=list)
    chunk_ids: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "content": self.content,
            "document_ids": list(self.document_ids),
            "chunk_ids": list(self.chunk_ids),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeNode:
        return cls(
            id=data["id"],
            type=NodeType(data["type"]),
            label=data["label"],
            content=data.get("content", ""),
            document_ids=list(data.get("document_ids") or []),
            chunk_ids=list(data.get("chunk_ids") or []),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class KnowledgeEdge:
    id: str
    source_id: str
    target_id: str
    type: EdgeType
    weight: float = 1.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not 0.0 <= self.weight <= 1.0:
            raise ValidationError(f"edge weight must be in [0, 1], got {self.weight}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.type.value,
            "weight": self.weight,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KnowledgeEdge:
        return cls(
            id=data["id"],
            source_id=data["source_id"],
            target_id=data["target_id"],
            type=EdgeType(data["type"]),
            weight=float(data.get("weight", 1.0)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class KnowledgeGraph:
    """All nodes and edges of one scope, append-merged across documents."""

    id: str
    scope: Scope
    nodes: list[KnowledgeNode] = field(default_factory=list)
    edges: list[KnowledgeEdge] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


def graph_id_for(scope: Scope) -> str:
    """Return the stable graph id of *scope* (one graph per scope)."""
    return f"{scope.folder_id}-{scope.owner_id}-graph"
