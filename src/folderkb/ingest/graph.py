"""Heuristic knowledge graph: one document node plus concept nodes per chunk.

Concept extraction is a placeholder: lower-cased words longer than four
characters, minus a small stop-word list, at most five distinct per chunk.
Anything producing ``(nodes, edges)`` can replace ``extract_concepts``.
"""

from __future__ import annotations

import re

from folderkb.db.models import (
    Chunk,
    Document,
    EdgeType,
    KnowledgeEdge,
    KnowledgeGraph,
    KnowledgeNode,
    NodeType,
    Scope,
    graph_id_for,
    utcnow,
)

CONTAINS_WEIGHT = 0.8
MAX_CONCEPTS_PER_CHUNK = 5
_MIN_CONCEPT_CHARS = 5
_PREVIEW_CHARS = 200

STOP_WORDS = frozenset({
    "the", "and", "this", "that", "with", "have", "will", "from", "they",
    "been", "their", "there", "which", "would", "about", "these", "those",
    "other",
})

_NON_WORD_RE = re.compile(r"\W+")


def extract_concepts(text: str, limit: int = MAX_CONCEPTS_PER_CHUNK) -> list[str]:
    """Return up to *limit* distinct candidate concepts in order of first appearance."""
    concepts: list[str] = []
    for word in _NON_WORD_RE.split(text.lower()):
        if len(word) < _MIN_CONCEPT_CHARS or word in STOP_WORDS or word in concepts:
            continue
        concepts.append(word)
        if len(concepts) == limit:
            break
    return concepts


class KnowledgeGraphBuilder:
    """Build per-document graph fragments and fold them into a scope's graph."""

    def build(
        self, document: Document, chunks: list[Chunk]
    ) -> tuple[list[KnowledgeNode], list[KnowledgeEdge]]:
        doc_node = KnowledgeNode(
            id=document.id,
            type=NodeType.DOCUMENT,
            label=document.name,
            content=document.content[:_PREVIEW_CHARS] + "...",
            document_ids=[document.id],
            chunk_ids=[c.id for c in chunks],
            metadata={"type": document.type.value, "size": document.size},
        )
        nodes = [doc_node]
        edges: list[KnowledgeEdge] = []

        for chunk in chunks:
            for concept in extract_concepts(chunk.content):
                node = KnowledgeNode(
                    id=f"{chunk.id}-concept-{concept}",
                    type=NodeType.CONCEPT,
                    label=concept,
                    content=concept,
                    document_ids=[document.id],
                    chunk_ids=[chunk.id],
                    metadata={"chunk_index": chunk.chunk_index},
                )
                nodes.append(node)
                edges.append(
                    KnowledgeEdge(
                        id=f"{document.id}-contains-{node.id}",
                        source_id=document.id,
                        target_id=node.id,
                        type=EdgeType.CONTAINS,
                        weight=CONTAINS_WEIGHT,
                    )
                )
        return nodes, edges

    def merge(
        self,
        graph: KnowledgeGraph | None,
        scope: Scope,
        nodes: list[KnowledgeNode],
        edges: list[KnowledgeEdge],
    ) -> KnowledgeGraph:
        """Append *nodes* and *edges* to *graph* (a new graph when None).

        Items whose id is already present replace the stored ones.
        """
        if graph is None:
            graph = KnowledgeGraph(id=graph_id_for(scope), scope=scope)

        node_index = {n.id: i for i, n in enumerate(graph.nodes)}
        for node in nodes:
            if node.id in node_index:
                graph.nodes[node_index[node.id]] = node
            else:
                node_index[node.id] = len(graph.nodes)
                graph.nodes.append(node)

        edge_index = {e.id: i for i, e in enumerate(graph.edges)}
        for edge in edges:
            if edge.id in edge_index:
                graph.edges[edge_index[edge.id]] = edge
            else:
                edge_index[edge.id] = len(graph.edges)
                graph.edges.append(edge)

        self._touch(graph)
        return graph

    def prune_document(self, graph: KnowledgeGraph, document_id: str) -> KnowledgeGraph:
        """Detach *document_id*; nodes left without documents and dangling edges go."""
        kept: list[KnowledgeNode] = []
        for node in graph.nodes:
            if document_id in node.document_ids:
                node.document_ids = [d for d in node.document_ids if d != document_id]
            if node.document_ids:
                kept.append(node)
        graph.nodes = kept

        alive = {n.id for n in kept}
        graph.edges = [e for e in graph.edges if e.source_id in alive and e.target_id in alive]
        self._touch(graph)
        return graph

    @staticmethod
    def _touch(graph: KnowledgeGraph) -> None:
        graph.updated_at = utcnow()
        graph.metadata["document_count"] = sum(
            1 for n in graph.nodes if n.type is NodeType.DOCUMENT
        )
