"""Background ingestion: chunk → store chunks → embed each chunk → merge graph.

Runs after the document row is stored. Jobs execute on a thread pool and
report progress through ``IngestionReport``; callers poll ``status()`` or
block on ``wait()``.

Stage failures are logged and recorded on the report. Completed stages are
never rolled back, so a document may end up with chunks but no embeddings.
Each chunk's embedding succeeds or fails on its own.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum

from folderkb.db.models import Chunk, Document, Embedding, KnowledgeGraph, Scope, graph_id_for
from folderkb.db.store import RecordKind, ScopedStore
from folderkb.ingest.base import BaseChunker
from folderkb.ingest.embedding import EmbeddingProvider
from folderkb.ingest.graph import KnowledgeGraphBuilder

logger = logging.getLogger(__name__)


class IngestionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class IngestionReport:
    """Outcome of one document's background job.

    Attributes:
        document_id: The ingested document.
        status: Job state; FAILED when the chunk or graph stage raised.
        chunk_count: Chunks stored.
        embedded_count: Chunks with a stored embedding.
        failed_embeddings: Ids of chunks whose embedding failed.
        graph_updated: Whether the scope graph was merged.
        error: Message of the stage failure, if any.
    """

    document_id: str
    status: IngestionStatus = IngestionStatus.PENDING
    chunk_count: int = 0
    embedded_count: int = 0
    failed_embeddings: list[str] = field(default_factory=list)
    graph_updated: bool = False
    error: str | None = None

    @property
    def done(self) -> bool:
        return self.status in (IngestionStatus.COMPLETED, IngestionStatus.FAILED)


class IngestionPipeline:
    """Detached chunk/embed/graph processing for stored documents.

    Args:
        store: Scoped store holding the documents.
        chunker: Splits document content into chunks.
        embedder: Produces chunk vectors.
        graph_builder: Derives graph nodes/edges from chunks.
        max_workers: Thread pool size.
        max_finished_reports: Finished reports kept for ``status()``; the
            oldest are evicted past this count.
    """

    def __init__(
        self,
        store: ScopedStore,
        chunker: BaseChunker,
        embedder: EmbeddingProvider,
        graph_builder: KnowledgeGraphBuilder | None = None,
        max_workers: int = 2,
        max_finished_reports: int = 1000,
    ) -> None:
        self._store = store
        self._chunker = chunker
        self._embedder = embedder
        self._graph_builder = graph_builder or KnowledgeGraphBuilder()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="folderkb-ingest")
        self._lock = threading.Lock()
        # Serialises read-modify-write of scope graphs (merge and prune).
        self._graph_lock = threading.Lock()
        self._reports: dict[str, IngestionReport] = {}
        self._futures: dict[str, Future] = {}
        self._max_finished_reports = max_finished_reports

    # ------------------------------------------------------------------
    # Job control
    # ------------------------------------------------------------------

    def submit(self, document: Document) -> IngestionReport:
        """Queue *document* for processing and return its (pending) report."""
        report = IngestionReport(document_id=document.id)
        with self._lock:
            self._prune_finished()
            self._reports.pop(document.id, None)
            self._reports[document.id] = report
            self._futures[document.id] = self._executor.submit(self._run, document, report)
        logger.debug("Queued ingestion of %s (%s)", document.name, document.id)
        return report

    def _prune_finished(self) -> None:
        """Drop finished futures and the oldest finished reports. Caller holds the lock."""
        self._futures = {doc_id: f for doc_id, f in self._futures.items() if not f.done()}
        finished = [doc_id for doc_id, r in self._reports.items() if r.done]
        for doc_id in finished[: max(0, len(finished) - self._max_finished_reports)]:
            del self._reports[doc_id]

    def status(self, document_id: str) -> IngestionReport | None:
        with self._lock:
            return self._reports.get(document_id)

    def wait(self, document_id: str, timeout: float | None = None) -> IngestionReport | None:
        """Block until *document_id*'s job has finished. Returns its report.

        Raises:
            TimeoutError: If the job is still running after *timeout* seconds.
        """
        with self._lock:
            future = self._futures.get(document_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.status(document_id)

    def wait_all(self, timeout: float | None = None) -> list[IngestionReport]:
        """Block until every submitted job has finished."""
        with self._lock:
            futures = list(self._futures.values())
        _, not_done = wait(futures, timeout=timeout)
        if not_done:
            raise TimeoutError(f"{len(not_done)} ingestion job(s) still running")
        with self._lock:
            self._prune_finished()
            return list(self._reports.values())

    def forget(self, document_id: str) -> None:
        with self._lock:
            self._reports.pop(document_id, None)
            self._futures.pop(document_id, None)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, document: Document) -> IngestionReport:
        """Run every stage for *document* on the calling thread."""
        report = IngestionReport(document_id=document.id)
        self._run(document, report)
        return report

    def _run(self, document: Document, report: IngestionReport) -> None:
        report.status = IngestionStatus.RUNNING
        try:
            chunks = self._chunk_stage(document)
        except Exception as exc:  # background job: record instead of raising
            logger.error("Chunking failed for document %s: %s", document.id, exc, exc_info=True)
            report.status = IngestionStatus.FAILED
            report.error = f"chunking: {exc}"
            return
        report.chunk_count = len(chunks)

        self._embed_stage(chunks, report)

        try:
            self._graph_stage(document, chunks)
            report.graph_updated = True
        except Exception as exc:  # background job: record instead of raising
            logger.error("Graph update failed for document %s: %s", document.id, exc, exc_info=True)
            report.status = IngestionStatus.FAILED
            report.error = f"graph: {exc}"
            return

        report.status = IngestionStatus.COMPLETED
        logger.info(
            "Ingested %s: %d chunks, %d embedded, %d failed",
            document.name,
            report.chunk_count,
            report.embedded_count,
            len(report.failed_embeddings),
        )

    def _chunk_stage(self, document: Document) -> list[Chunk]:
        chunks = self._chunker.chunk(document)
        for chunk in chunks:
            self._store.put(RecordKind.CHUNK, chunk)
        return chunks

    def _embed_stage(self, chunks: list[Chunk], report: IngestionReport) -> None:
        for chunk in chunks:
            try:
                vector = self._embedder.embed(chunk.content)
                self._store.put(
                    RecordKind.EMBEDDING,
                    Embedding(
                        id=chunk.id,
                        document_id=chunk.document_id,
                        scope=chunk.scope,
                        vector=vector,
                        model=self._embedder.model.name,
                    ),
                )
            except Exception as exc:  # one chunk's failure must not stop the rest
                logger.warning("Embedding failed for chunk %s: %s", chunk.id, exc)
                report.failed_embeddings.append(chunk.id)
            else:
                report.embedded_count += 1

    def _graph_stage(self, document: Document, chunks: list[Chunk]) -> None:
        nodes, edges = self._graph_builder.build(document, chunks)
        with self._graph_lock:
            graph = self.load_graph(document.scope)
            graph = self._graph_builder.merge(graph, document.scope, nodes, edges)
            self._store.put(RecordKind.GRAPH, graph)

    # ------------------------------------------------------------------
    # Graph access
    # ------------------------------------------------------------------

    def load_graph(self, scope: Scope) -> KnowledgeGraph | None:
        graph = self._store.get(RecordKind.GRAPH, graph_id_for(scope))
        if graph is None or graph.scope != scope:
            return None
        return graph

    def prune_graph(self, scope: Scope, document_id: str) -> None:
        """Remove *document_id*'s nodes from the scope graph, if there is one."""
        with self._graph_lock:
            graph = self.load_graph(scope)
            if graph is None:
                return
            graph = self._graph_builder.prune_document(graph, document_id)
            self._store.put(RecordKind.GRAPH, graph)
