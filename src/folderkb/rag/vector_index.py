"""Scoped cosine-similarity ranking over stored chunk embeddings.

Contract (shared by every implementation):
  search(scope, query_vector, k) → [(chunk, similarity), ...] best-first,
  drawn only from embeddings whose folder AND owner equal *scope*.
  k <= 0 or an empty scope yields [].

sim(a, b) = dot(a, b) / (|a| · |b|)
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from folderkb.db.models import Chunk, Embedding, Scope
from folderkb.db.repository import SqliteRepository
from folderkb.db.store import RecordKind, ScopedStore
from folderkb.errors import ComputationError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ScoredChunk:
    """A retrieved chunk together with its cosine similarity to the query."""

    chunk: Chunk
    similarity: float


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two equal-length vectors.

    Raises:
        ValidationError: If the lengths differ.
        ComputationError: If either vector has zero magnitude.
    """
    if len(a) != len(b):
        raise ValidationError(f"Vector length mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    denominator = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if denominator == 0.0:
        raise ComputationError("Cosine similarity is undefined for a zero-magnitude vector")
    return dot / denominator


def _check_query(query_vector: list[float]) -> None:
    if not query_vector or not any(query_vector):
        raise ComputationError("Query vector has zero magnitude")


class VectorIndex(ABC):
    """Top-k similarity search restricted to one scope."""

    @abstractmethod
    def search(self, scope: Scope, query_vector: list[float], k: int) -> list[ScoredChunk]:
        """Return up to *k* chunks of *scope*, most similar first."""


class BruteForceVectorIndex(VectorIndex):
    """Full scan over the scope's embeddings: O(n) per query.

    Embeddings whose dimension differs from the query (e.g. left behind by a
    previous embedding model) and embeddings whose chunk is gone are skipped.
    """

    def __init__(self, store: ScopedStore) -> None:
        self._store = store

    def search(self, scope: Scope, query_vector: list[float], k: int) -> list[ScoredChunk]:
        if k <= 0:
            return []
        _check_query(query_vector)

        embeddings: list[Embedding] = self._store.query_by_scope(RecordKind.EMBEDDING, scope)
        if not embeddings:
            return []

        ranked: list[tuple[str, float]] = []
        for emb in embeddings:
            if emb.scope != scope or len(emb.vector) != len(query_vector):
                continue
            try:
                ranked.append((emb.id, cosine_similarity(query_vector, emb.vector)))
            except ComputationError:
                logger.warning("Skipping zero-magnitude embedding %s", emb.id)
        ranked.sort(key=lambda r: r[1], reverse=True)

        chunks = {c.id: c for c in self._store.query_by_scope(RecordKind.CHUNK, scope)}
        results: list[ScoredChunk] = []
        for chunk_id, similarity in ranked:
            chunk = chunks.get(chunk_id)
            if chunk is None:
                continue
            results.append(ScoredChunk(chunk=chunk, similarity=similarity))
            if len(results) == k:
                break
        return results


class SqliteVecIndex(VectorIndex):
    """Same contract, ranked inside SQLite with sqlite-vec's ``vec_distance_cosine``.

    The scope filter is part of the SQL WHERE clause, so other scopes' rows
    never leave the database.
    """

    def __init__(self, repo: SqliteRepository) -> None:
        self._repo = repo

    def search(self, scope: Scope, query_vector: list[float], k: int) -> list[ScoredChunk]:
        if k <= 0:
            return []
        _check_query(query_vector)
        return [
            ScoredChunk(chunk=chunk, similarity=similarity)
            for chunk, similarity in self._repo.search_vec(scope, query_vector, limit=k)
            if chunk.scope == scope
        ]


def create_vector_index(store: ScopedStore) -> VectorIndex:
    """Pick the index that matches *store*'s backend."""
    if isinstance(store, SqliteRepository):
        return SqliteVecIndex(store)
    return BruteForceVectorIndex(store)
