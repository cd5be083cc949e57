"""SQLite implementation of the scoped store.

Single persistent backend for documents, chunks, embeddings and knowledge
graphs. Every listing query filters on ``folder_id`` AND ``owner_id``;
vectors are stored as JSON text, which sqlite-vec's scalar functions accept
directly.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime

from folderkb.db.models import (
    Chunk,
    ChunkMetadata,
    Document,
    DocumentMetadata,
    DocumentType,
    Embedding,
    KnowledgeEdge,
    KnowledgeGraph,
    KnowledgeNode,
    Scope,
)
from folderkb.db.store import Record, RecordKind, ScopedStore, check_record
from folderkb.errors import StorageError

_TABLES: dict[RecordKind, str] = {
    RecordKind.DOCUMENT: "documents",
    RecordKind.CHUNK: "chunks",
    RecordKind.EMBEDDING: "embeddings",
    RecordKind.GRAPH: "knowledge_graphs",
}

_CHUNK_COLUMNS = (
    "id, document_id, folder_id, owner_id, content, start_offset, end_offset, "
    "chunk_index, token_count, metadata, created_at"
)


class SqliteRepository(ScopedStore):
    """Data access layer for all folderkb entities.

    Wraps an open sqlite3.Connection (see ``folderkb.db.connection.Database``)
    whose schema has been initialised. The connection is owned by the caller
    unless ``close()`` is called on the repository.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # ScopedStore
    # ------------------------------------------------------------------

    def get(self, kind: RecordKind, record_id: str) -> Record | None:
        table = _TABLES[kind]
        columns = _CHUNK_COLUMNS if kind is RecordKind.CHUNK else "*"
        row = self._fetchone(f"SELECT {columns} FROM {table} WHERE id = ?", (record_id,))
        return _ROW_READERS[kind](row) if row else None

    def put(self, kind: RecordKind, record: Record) -> None:
        check_record(kind, record)
        sql, params = _WRITERS[kind](record)
        self._write(sql, params)

    def delete(self, kind: RecordKind, record_id: str) -> None:
        self._write(f"DELETE FROM {_TABLES[kind]} WHERE id = ?", (record_id,))

    def query_by_scope(self, kind: RecordKind, scope: Scope) -> list[Record]:
        table = _TABLES[kind]
        columns = _CHUNK_COLUMNS if kind is RecordKind.CHUNK else "*"
        order = "document_id, chunk_index" if kind is RecordKind.CHUNK else "rowid"
        rows = self._fetchall(
            f"SELECT {columns} FROM {table} WHERE folder_id = ? AND owner_id = ? ORDER BY {order}",
            (scope.folder_id, scope.owner_id),
        )
        reader = _ROW_READERS[kind]
        return [reader(r) for r in rows]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Vector search (sqlite-vec)
    # ------------------------------------------------------------------

    def search_vec(
        self, scope: Scope, embedding: list[float], limit: int = 10
    ) -> list[tuple[Chunk, float]]:
        """Cosine ranking inside *scope*. Returns (chunk, similarity) best-first.

        ``vec_distance_cosine`` returns ``1 - cos``; it is converted back to a
        similarity here. Embeddings whose dimension differs from *embedding*
        are skipped, as are embeddings whose chunk row is gone.
        """
        if limit <= 0:
            return []
        rows = self._fetchall(
            f"""
            SELECT {", ".join("c." + c.strip() for c in _CHUNK_COLUMNS.split(","))},
                   1.0 - vec_distance_cosine(e.vector, ?) AS similarity
            FROM embeddings e
            JOIN chunks c
              ON c.id = e.id AND c.folder_id = e.folder_id AND c.owner_id = e.owner_id
            WHERE e.folder_id = ? AND e.owner_id = ? AND e.dimensions = ?
            ORDER BY similarity DESC
            LIMIT ?
            """,
            (json.dumps(embedding), scope.folder_id, scope.owner_id, len(embedding), limit),
        )
        return [(_row_to_chunk(r), float(r["similarity"])) for r in rows]

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                self._conn.execute(sql, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StorageError(f"Database write failed: {exc}") from exc

    def _fetchone(self, sql: str, params: tuple) -> sqlite3.Row | None:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"Database read failed: {exc}") from exc

    def _fetchall(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"Database read failed: {exc}") from exc


# ------------------------------------------------------------------
# Model → row helpers
# ------------------------------------------------------------------


def _document_sql(doc: Document) -> tuple[str, tuple]:
    return (
        """
        INSERT OR REPLACE INTO documents
            (id, folder_id, owner_id, name, type, content, size, metadata, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            doc.id,
            doc.scope.folder_id,
            doc.scope.owner_id,
            doc.name,
            doc.type.value,
            doc.content,
            doc.size,
            json.dumps(doc.metadata.to_dict()),
            doc.created_at.isoformat(),
            doc.updated_at.isoformat(),
        ),
    )


def _chunk_sql(chunk: Chunk) -> tuple[str, tuple]:
    return (
        f"INSERT OR REPLACE INTO chunks ({_CHUNK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            chunk.id,
            chunk.document_id,
            chunk.scope.folder_id,
            chunk.scope.owner_id,
            chunk.content,
            chunk.start_offset,
            chunk.end_offset,
            chunk.chunk_index,
            chunk.token_count,
            json.dumps(chunk.metadata.to_dict()),
            chunk.created_at.isoformat(),
        ),
    )


def _embedding_sql(emb: Embedding) -> tuple[str, tuple]:
    return (
        """
        INSERT OR REPLACE INTO embeddings
            (id, document_id, folder_id, owner_id, model, dimensions, vector, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            emb.id,
            emb.document_id,
            emb.scope.folder_id,
            emb.scope.owner_id,
            emb.model,
            emb.dimensions,
            json.dumps(emb.vector),
            emb.created_at.isoformat(),
        ),
    )


def _graph_sql(graph: KnowledgeGraph) -> tuple[str, tuple]:
    return (
        """
        INSERT OR REPLACE INTO knowledge_graphs
            (id, folder_id, owner_id, nodes, edges, metadata, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            graph.id,
            graph.scope.folder_id,
            graph.scope.owner_id,
            json.dumps([n.to_dict() for n in graph.nodes]),
            json.dumps([e.to_dict() for e in graph.edges]),
            json.dumps(graph.metadata, default=str),
            graph.created_at.isoformat(),
            graph.updated_at.isoformat(),
        ),
    )


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _scope(row: sqlite3.Row) -> Scope:
    return Scope(folder_id=row["folder_id"], owner_id=row["owner_id"])


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        scope=_scope(row),
        name=row["name"],
        type=DocumentType(row["type"]),
        content=row["content"],
        size=row["size"],
        metadata=DocumentMetadata.from_dict(json.loads(row["metadata"])),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        scope=_scope(row),
        content=row["content"],
        start_offset=row["start_offset"],
        end_offset=row["end_offset"],
        chunk_index=row["chunk_index"],
        token_count=row["token_count"],
        metadata=ChunkMetadata.from_dict(json.loads(row["metadata"])),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_embedding(row: sqlite3.Row) -> Embedding:
    return Embedding(
        id=row["id"],
        document_id=row["document_id"],
        scope=_scope(row),
        vector=[float(v) for v in json.loads(row["vector"])],
        model=row["model"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_graph(row: sqlite3.Row) -> KnowledgeGraph:
    return KnowledgeGraph(
        id=row["id"],
        scope=_scope(row),
        nodes=[KnowledgeNode.from_dict(n) for n in json.loads(row["nodes"])],
        edges=[KnowledgeEdge.from_dict(e) for e in json.loads(row["edges"])],
        metadata=json.loads(row["metadata"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


_ROW_READERS = {
    RecordKind.DOCUMENT: _row_to_document,
    RecordKind.CHUNK: _row_to_chunk,
    RecordKind.EMBEDDING: _row_to_embedding,
    RecordKind.GRAPH: _row_to_graph,
}

_WRITERS = {
    RecordKind.DOCUMENT: _document_sql,
    RecordKind.CHUNK: _chunk_sql,
    RecordKind.EMBEDDING: _embedding_sql,
    RecordKind.GRAPH: _graph_sql,
}
