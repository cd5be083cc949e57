"""Contract tests run against both MemoryStore and SqliteRepository."""

from __future__ import annotations

import pytest

from folderkb.db.models import (
    Chunk,
    ChunkMetadata,
    DocumentType,
    EdgeType,
    Embedding,
    KnowledgeEdge,
    KnowledgeGraph,
    KnowledgeNode,
    NodeType,
    Scope,
    graph_id_for,
)
from folderkb.db.store import RecordKind
from folderkb.errors import ValidationError

from conftest import make_document


def _chunk(scope: Scope, chunk_id: str = "c-1", index: int = 0, document_id: str = "doc-1") -> Chunk:
    return Chunk(
        id=chunk_id,
        document_id=document_id,
        scope=scope,
        content="The cat sat.",
        start_offset=0,
        end_offset=12,
        chunk_index=index,
        token_count=3,
        metadata=ChunkMetadata(document_name="doc.txt", document_type=DocumentType.TEXT),
    )


def test_put_then_get_document(store, scope_a):
    doc = make_document("Total amount due: $500", scope_a)
    store.put(RecordKind.DOCUMENT, doc)
    loaded = store.get(RecordKind.DOCUMENT, doc.id)
    assert loaded is not None
    assert loaded.content == doc.content
    assert loaded.scope == scope_a
    assert loaded.type is DocumentType.TEXT


def test_get_missing_returns_none(store):
    assert store.get(RecordKind.DOCUMENT, "nope") is None


def test_put_replaces_existing(store, scope_a):
    store.put(RecordKind.DOCUMENT, make_document("old", scope_a))
    store.put(RecordKind.DOCUMENT, make_document("new", scope_a))
    assert store.get(RecordKind.DOCUMENT, "doc-1").content == "new"
    assert len(store.query_by_scope(RecordKind.DOCUMENT, scope_a)) == 1


def test_delete_removes_record_and_missing_is_noop(store, scope_a):
    store.put(RecordKind.CHUNK, _chunk(scope_a))
    store.delete(RecordKind.CHUNK, "c-1")
    store.delete(RecordKind.CHUNK, "c-1")
    assert store.get(RecordKind.CHUNK, "c-1") is None


def test_query_by_scope_matches_folder_and_owner(store, scope_a):
    same_folder_other_owner = Scope(folder_id=scope_a.folder_id, owner_id="mallory")
    same_owner_other_folder = Scope(folder_id=99, owner_id=scope_a.owner_id)
    store.put(RecordKind.DOCUMENT, make_document("mine", scope_a, doc_id="d-a"))
    store.put(RecordKind.DOCUMENT, make_document("theirs", same_folder_other_owner, doc_id="d-b"))
    store.put(RecordKind.DOCUMENT, make_document("other", same_owner_other_folder, doc_id="d-c"))

    docs = store.query_by_scope(RecordKind.DOCUMENT, scope_a)
    assert [d.id for d in docs] == ["d-a"]


def test_embedding_round_trip(store, scope_a):
    emb = Embedding(id="c-1", document_id="doc-1", scope=scope_a, vector=[0.6, 0.8], model="m")
    store.put(RecordKind.EMBEDDING, emb)
    loaded = store.get(RecordKind.EMBEDDING, "c-1")
    assert loaded.vector == pytest.approx([0.6, 0.8])
    assert loaded.dimensions == 2
    assert loaded.model == "m"


def test_graph_round_trip(store, scope_a):
    graph = KnowledgeGraph(
        id=graph_id_for(scope_a),
        scope=scope_a,
        nodes=[
            KnowledgeNode(id="doc-1", type=NodeType.DOCUMENT, label="doc.txt", document_ids=["doc-1"]),
            KnowledgeNode(id="n-1", type=NodeType.CONCEPT, label="invoice", document_ids=["doc-1"]),
        ],
        edges=[
            KnowledgeEdge(id="e-1", source_id="doc-1", target_id="n-1", type=EdgeType.CONTAINS, weight=0.8)
        ],
    )
    store.put(RecordKind.GRAPH, graph)
    loaded = store.get(RecordKind.GRAPH, graph.id)
    assert [n.label for n in loaded.nodes] == ["doc.txt", "invoice"]
    assert loaded.edges[0].type is EdgeType.CONTAINS
    assert loaded.edges[0].weight == 0.8


def test_returned_records_are_copies(store, scope_a):
    store.put(RecordKind.CHUNK, _chunk(scope_a))
    loaded = store.get(RecordKind.CHUNK, "c-1")
    loaded.content = "mutated"
    assert store.get(RecordKind.CHUNK, "c-1").content == "The cat sat."


def test_put_rejects_wrong_record_kind(store, scope_a):
    with pytest.raises(ValidationError):
        store.put(RecordKind.CHUNK, make_document("x", scope_a))
