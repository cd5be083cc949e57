"""Tests for the heuristic knowledge graph builder."""

from __future__ import annotations

from folderkb.db.models import EdgeType, NodeType, Scope, graph_id_for
from folderkb.ingest.graph import CONTAINS_WEIGHT, KnowledgeGraphBuilder, extract_concepts
from folderkb.ingest.sentence import SentenceChunker

from conftest import make_document

SCOPE = Scope(folder_id=4, owner_id="carol")


def _build(text: str, doc_id: str = "doc-1", name: str = "notes.txt"):
    doc = make_document(text, SCOPE, name=name, doc_id=doc_id)
    chunks = SentenceChunker(max_tokens=20, min_chunk_size=0).chunk(doc)
    nodes, edges = KnowledgeGraphBuilder().build(doc, chunks)
    return doc, chunks, nodes, edges


def test_extract_concepts_filters_short_and_stop_words():
    text = "Their invoice, which was there, covers shipping and invoice handling."
    assert extract_concepts(text) == ["invoice", "covers", "shipping", "handling"]


def test_extract_concepts_caps_at_five_distinct():
    text = "alpha1 bravo2 charlie delta4 echo55 foxtrot golfing"
    assert extract_concepts(text) == ["alpha1", "bravo2", "charlie", "delta4", "echo55"]


def test_document_node_summarises_the_document():
    doc, chunks, nodes, _ = _build("Quarterly invoice summary. " * 20)
    doc_node = nodes[0]
    assert doc_node.id == doc.id
    assert doc_node.type is NodeType.DOCUMENT
    assert doc_node.label == "notes.txt"
    assert doc_node.content == doc.content[:200] + "..."
    assert doc_node.chunk_ids == [c.id for c in chunks]
    assert doc_node.metadata == {"type": "text", "size": doc.size}


def test_concept_nodes_linked_from_document_with_contains_edges():
    doc, chunks, nodes, edges = _build("Shipping invoices arrive weekly.")
    concepts = [n for n in nodes if n.type is NodeType.CONCEPT]
    assert [n.label for n in concepts] == ["shipping", "invoices", "arrive", "weekly"]
    assert all(n.document_ids == [doc.id] for n in concepts)
    assert all(n.chunk_ids == [chunks[0].id] for n in concepts)
    assert len(edges) == len(concepts)
    for edge, node in zip(edges, concepts):
        assert edge.source_id == doc.id
        assert edge.target_id == node.id
        assert edge.type is EdgeType.CONTAINS
        assert edge.weight == CONTAINS_WEIGHT


def test_merge_appends_across_documents():
    builder = KnowledgeGraphBuilder()
    _, _, nodes_a, edges_a = _build("Shipping invoices arrive weekly.", doc_id="doc-a")
    _, _, nodes_b, edges_b = _build("Recipes need flour.", doc_id="doc-b")

    graph = builder.merge(None, SCOPE, nodes_a, edges_a)
    graph = builder.merge(graph, SCOPE, nodes_b, edges_b)

    assert graph.id == graph_id_for(SCOPE)
    assert graph.scope == SCOPE
    assert len(graph.nodes) == len(nodes_a) + len(nodes_b)
    assert len(graph.edges) == len(edges_a) + len(edges_b)
    assert graph.metadata["document_count"] == 2


def test_merge_is_idempotent_per_id():
    builder = KnowledgeGraphBuilder()
    _, _, nodes, edges = _build("Shipping invoices arrive weekly.")
    graph = builder.merge(None, SCOPE, nodes, edges)
    graph = builder.merge(graph, SCOPE, nodes, edges)
    assert len(graph.nodes) == len(nodes)
    assert len(graph.edges) == len(edges)


def test_prune_document_removes_its_nodes_and_dangling_edges():
    builder = KnowledgeGraphBuilder()
    _, _, nodes_a, edges_a = _build("Shipping invoices arrive weekly.", doc_id="doc-a")
    _, _, nodes_b, edges_b = _build("Recipes need flour.", doc_id="doc-b")
    graph = builder.merge(None, SCOPE, nodes_a + nodes_b, edges_a + edges_b)

    graph = builder.prune_document(graph, "doc-a")

    assert all("doc-a" not in n.document_ids for n in graph.nodes)
    assert {n.id for n in graph.nodes} == {n.id for n in nodes_b}
    node_ids = {n.id for n in graph.nodes}
    assert all(e.source_id in node_ids and e.target_id in node_ids for e in graph.edges)
    assert graph.metadata["document_count"] == 1
