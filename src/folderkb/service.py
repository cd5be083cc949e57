"""Knowledge-base service: document lifecycle, similarity search, RAG text.

Every method takes the caller's ``Scope`` and touches nothing outside it.
Writes (``add_document``, ``delete_document``) propagate errors; reads
(listings, search, RAG context) log a warning and return empty results.
"""

from __future__ import annotations

import logging
import mimetypes
import threading
import uuid
from pathlib import Path
from typing import Any

from folderkb.config import FolderKBConfig
from folderkb.db import MemoryStore, open_sqlite_store
from folderkb.db.models import Chunk, Document, DocumentMetadata, KnowledgeGraph, Scope
from folderkb.db.store import RecordKind, ScopedStore
from folderkb.errors import FolderKBError, NotFoundError, ValidationError
from folderkb.ingest.base import BaseChunker
from folderkb.ingest.embedding import EmbeddingProvider, create_embedding_provider
from folderkb.ingest.extract import detect_document_type, extract_text
from folderkb.ingest.graph import KnowledgeGraphBuilder
from folderkb.ingest.pipeline import IngestionPipeline, IngestionReport
from folderkb.ingest.sentence import SentenceChunker
from folderkb.rag.vector_index import ScoredChunk, VectorIndex, create_vector_index

logger = logging.getLogger(__name__)

# Candidates fetched before threshold and budget filtering.
_CONTEXT_CANDIDATES = 10


def _check_scope(scope: Scope) -> None:
    if not isinstance(scope, Scope):
        raise ValidationError(f"Expected a Scope, got {type(scope).__name__}")


class KnowledgeBase:
    """Scoped document store with background ingestion and vector search.

    Args:
        store: Backend for documents, chunks, embeddings and graphs.
        embedder: Embedding provider used for chunks and queries alike.
        chunker: Defaults to ``SentenceChunker()``.
        index: Defaults to the index matching *store*'s backend.
        graph_builder: Defaults to ``KnowledgeGraphBuilder()``.
        max_workers: Background ingestion threads.
    """

    def __init__(
        self,
        store: ScopedStore,
        embedder: EmbeddingProvider,
        chunker: BaseChunker | None = None,
        index: VectorIndex | None = None,
        graph_builder: KnowledgeGraphBuilder | None = None,
        max_workers: int = 2,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.index = index or create_vector_index(store)
        # Held from storing a document until its job is queued, and by deletes
        # until that job has finished.
        self._write_lock = threading.Lock()
        self.pipeline = IngestionPipeline(
            store,
            chunker or SentenceChunker(),
            embedder,
            graph_builder=graph_builder,
            max_workers=max_workers,
        )

    @classmethod
    def from_config(cls, cfg: FolderKBConfig, db_path: Path | None = None) -> KnowledgeBase:
        """Wire a KnowledgeBase from *cfg*; *db_path* overrides ``storage.path``.

        Raises:
            ValidationError: If the embedding model is not registered.
            EnvironmentError: If a remote model's API key is missing.
            StorageError: If the database cannot be opened.
        """
        # Provider first: a bad model must not leave a store open.
        embedder = create_embedding_provider(cfg.embedding.model, seed=cfg.embedding.seed)
        if cfg.storage.backend == "memory":
            store: ScopedStore = MemoryStore()
        else:
            store = open_sqlite_store(db_path or Path(cfg.storage.path))
        return cls(
            store,
            embedder,
            chunker=SentenceChunker(
                max_tokens=cfg.chunking.max_tokens,
                overlap=cfg.chunking.overlap,
                min_chunk_size=cfg.chunking.min_chunk_size,
            ),
            max_workers=cfg.ingest.max_workers,
        )

    def __enter__(self) -> KnowledgeBase:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Finish queued ingestion jobs, then release the store."""
        self.pipeline.shutdown(wait=True)
        self.store.close()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(
        self,
        scope: Scope,
        name: str,
        content: str | bytes,
        *,
        mime_type: str | None = None,
        original_file: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> Document:
        """Store a document and queue it for chunking, embedding and graphing.

        Raw bytes are converted to text first (PDF, HTML, UTF-8). The document
        is durable when this returns; its chunks and embeddings are not.

        Raises:
            ValidationError: On a malformed scope, empty name or unreadable PDF.
            StorageError: If the document cannot be stored.
        """
        _check_scope(scope)
        if not name or not name.strip():
            raise ValidationError("Document name must not be empty")

        text = extract_text(name, content, mime_type) if isinstance(content, bytes) else content
        document = Document(
            id=str(uuid.uuid4()),
            scope=scope,
            name=name,
            type=detect_document_type(name),
            content=text,
            size=len(text.encode("utf-8")),
            metadata=DocumentMetadata(
                original_file=original_file,
                mime_type=mime_type or "text/plain",
                extra=dict(extra or {}),
            ),
        )
        with self._write_lock:
            self.store.put(RecordKind.DOCUMENT, document)
            logger.info("Stored document %s (%s) in scope %s", document.name, document.id, scope)
            self.pipeline.submit(document)
        return document

    def add_file(self, scope: Scope, path: Path, extra: dict[str, Any] | None = None) -> Document:
        """Read *path* from disk and add it under its file name.

        Raises:
            NotFoundError: If *path* is not a file.
        """
        if not path.is_file():
            raise NotFoundError(f"File not found: {path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        return self.add_document(
            scope,
            path.name,
            path.read_bytes(),
            mime_type=mime_type or "text/plain",
            original_file=str(path),
            extra=extra,
        )

    def get_documents(self, scope: Scope) -> list[Document]:
        _check_scope(scope)
        try:
            docs = self.store.query_by_scope(RecordKind.DOCUMENT, scope)
        except FolderKBError as exc:
            logger.warning("Listing documents failed for scope %s: %s", scope, exc)
            return []
        return sorted(docs, key=lambda d: d.created_at)

    def get_document(self, scope: Scope, document_id: str) -> Document:
        """Return *document_id* if it belongs to *scope*.

        Raises:
            NotFoundError: If it does not exist in *scope*.
        """
        _check_scope(scope)
        doc = self.store.get(RecordKind.DOCUMENT, document_id)
        if doc is None or doc.scope != scope:
            raise NotFoundError(f"Document '{document_id}' not found in scope {scope}")
        return doc

    def delete_document(self, scope: Scope, document_id: str) -> None:
        """Delete a document with its embeddings and chunks, then prune the graph.

        Waits for the document's ingestion job first, so no chunk is written
        after the delete.

        Raises:
            NotFoundError: If the document does not exist in *scope*.
            StorageError: If a delete fails.
        """
        with self._write_lock:
            doc = self.get_document(scope, document_id)
            self.pipeline.wait(doc.id)

        for emb in self.store.query_by_scope(RecordKind.EMBEDDING, scope):
            if emb.document_id == doc.id:
                self.store.delete(RecordKind.EMBEDDING, emb.id)
        for chunk in self.store.query_by_scope(RecordKind.CHUNK, scope):
            if chunk.document_id == doc.id:
                self.store.delete(RecordKind.CHUNK, chunk.id)
        self.store.delete(RecordKind.DOCUMENT, doc.id)
        self.pipeline.prune_graph(scope, doc.id)
        self.pipeline.forget(doc.id)
        logger.info("Deleted document %s (%s) from scope %s", doc.name, doc.id, scope)

    def cleanup_scope(self, scope: Scope) -> int:
        """Delete every document of *scope* and its graph. Returns the document count."""
        _check_scope(scope)
        docs = self.store.query_by_scope(RecordKind.DOCUMENT, scope)
        for doc in docs:
            self.delete_document(scope, doc.id)
        graph = self.pipeline.load_graph(scope)
        if graph is not None:
            self.store.delete(RecordKind.GRAPH, graph.id)
        return len(docs)

    # ------------------------------------------------------------------
    # Derived data
    # ------------------------------------------------------------------

    def get_chunks(self, scope: Scope, document_id: str | None = None) -> list[Chunk]:
        """Chunks of *scope* (optionally one document's), in document then index order."""
        _check_scope(scope)
        try:
            chunks = self.store.query_by_scope(RecordKind.CHUNK, scope)
        except FolderKBError as exc:
            logger.warning("Listing chunks failed for scope %s: %s", scope, exc)
            return []
        if document_id is not None:
            chunks = [c for c in chunks if c.document_id == document_id]
        return sorted(chunks, key=lambda c: (c.document_id, c.chunk_index))

    def count_embeddings(self, scope: Scope) -> int:
        _check_scope(scope)
        try:
            return len(self.store.query_by_scope(RecordKind.EMBEDDING, scope))
        except FolderKBError as exc:
            logger.warning("Counting embeddings failed for scope %s: %s", scope, exc)
            return 0

    def get_knowledge_graph(self, scope: Scope) -> KnowledgeGraph | None:
        _check_scope(scope)
        try:
            return self.pipeline.load_graph(scope)
        except FolderKBError as exc:
            logger.warning("Loading graph failed for scope %s: %s", scope, exc)
            return None

    # ------------------------------------------------------------------
    # Ingestion progress
    # ------------------------------------------------------------------

    def ingestion_status(self, document_id: str) -> IngestionReport | None:
        return self.pipeline.status(document_id)

    def wait_for_ingestion(
        self, document_id: str | None = None, timeout: float | None = None
    ) -> list[IngestionReport]:
        """Block until *document_id*'s job (or every job) has finished."""
        if document_id is None:
            return self.pipeline.wait_all(timeout=timeout)
        report = self.pipeline.wait(document_id, timeout=timeout)
        return [report] if report is not None else []

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search_similar_content(self, scope: Scope, query: str, k: int = 5) -> list[ScoredChunk]:
        """Top-*k* chunks of *scope* for *query*, most similar first.

        Failures (unembeddable query, store errors) degrade to ``[]``.
        """
        _check_scope(scope)
        if k <= 0:
            return []
        try:
            query_vector = self.embedder.embed(query)
            return self.index.search(scope, query_vector, k)
        except FolderKBError as exc:
            logger.warning("Similarity search failed in scope %s: %s", scope, exc)
            return []

    def build_context_for_query(
        self,
        scope: Scope,
        query: str,
        max_tokens: int = 2000,
        similarity_threshold: float = 0.7,
    ) -> str:
        """Concatenate the best-matching chunks of *scope* within *max_tokens*.

        Candidates are taken best-first; the walk stops at the first chunk that
        would overflow the budget, and chunks below *similarity_threshold* are
        skipped. Returns ``""`` when nothing qualifies.
        """
        parts: list[str] = []
        total = 0
        for result in self.search_similar_content(scope, query, k=_CONTEXT_CANDIDATES):
            chunk = result.chunk
            if total + chunk.token_count > max_tokens:
                break
            if result.similarity >= similarity_threshold:
                parts.append(f"\n--- {chunk.metadata.document_name} ---\n{chunk.content}\n")
                total += chunk.token_count
        return "".join(parts).strip()
