"""Scoped store interface and the in-memory implementation.

The store is deliberately small: ``get``, ``put``, ``delete`` and
``query_by_scope`` for each ``RecordKind``. ``query_by_scope`` is the only
listing operation and it matches folder AND owner exactly.
"""

from __future__ import annotations

import copy
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Union

from folderkb.db.models import Chunk, Document, Embedding, KnowledgeGraph, Scope
from folderkb.errors import ValidationError

Record = Union[Document, Chunk, Embedding, KnowledgeGraph]


class RecordKind(str, Enum):
    DOCUMENT = "document"
    CHUNK = "chunk"
    EMBEDDING = "embedding"
    GRAPH = "graph"


_RECORD_TYPES: dict[RecordKind, type] = {
    RecordKind.DOCUMENT: Document,
    RecordKind.CHUNK: Chunk,
    RecordKind.EMBEDDING: Embedding,
    RecordKind.GRAPH: KnowledgeGraph,
}


def check_record(kind: RecordKind, record: Record) -> None:
    """Raise ValidationError if *record* is not the dataclass stored under *kind*."""
    expected = _RECORD_TYPES[kind]
    if not isinstance(record, expected):
        raise ValidationError(
            f"Cannot store {type(record).__name__} as {kind.value!r}; expected {expected.__name__}"
        )


class ScopedStore(ABC):
    """Persistence boundary for documents, chunks, embeddings and graphs.

    Implementations raise ``StorageError`` when the backend is unavailable.
    ``get`` and ``delete`` are keyed by record id only; callers compare the
    returned record's scope before acting on it.
    """

    @abstractmethod
    def get(self, kind: RecordKind, record_id: str) -> Record | None:
        """Return the record of *kind* with *record_id*, or None."""

    @abstractmethod
    def put(self, kind: RecordKind, record: Record) -> None:
        """Insert or replace *record*."""

    @abstractmethod
    def delete(self, kind: RecordKind, record_id: str) -> None:
        """Delete a record. Deleting a missing id is a no-op."""

    @abstractmethod
    def query_by_scope(self, kind: RecordKind, scope: Scope) -> list[Record]:
        """Return every record of *kind* whose scope equals *scope*."""

    def close(self) -> None:
        """Release backend resources (no-op by default)."""


class MemoryStore(ScopedStore):
    """Dict-backed store with the same shape as the sqlite repository.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._data: dict[RecordKind, dict[str, Record]] = {kind: {} for kind in RecordKind}

    def get(self, kind: RecordKind, record_id: str) -> Record | None:
        with self._lock:
            record = self._data[kind].get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def put(self, kind: RecordKind, record: Record) -> None:
        check_record(kind, record)
        with self._lock:
            self._data[kind][record.id] = copy.deepcopy(record)

    def delete(self, kind: RecordKind, record_id: str) -> None:
        with self._lock:
            self._data[kind].pop(record_id, None)

    def query_by_scope(self, kind: RecordKind, scope: Scope) -> list[Record]:
        with self._lock:
            return [
                copy.deepcopy(r) for r in self._data[kind].values() if r.scope == scope
            ]
