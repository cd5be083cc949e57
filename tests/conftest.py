"""Shared pytest fixtures."""

from __future__ import annotations

import re

import pytest

from folderkb.db.connection import Database
from folderkb.db.models import Document, DocumentType, Scope
from folderkb.db.repository import SqliteRepository
from folderkb.db.schema import initialize
from folderkb.db.store import MemoryStore
from folderkb.ingest.embedding import EmbeddingModelSpec, EmbeddingProvider
from folderkb.ingest.sentence import SentenceChunker
from folderkb.service import KnowledgeBase

VOCAB = [
    "cat", "dog", "sat", "ran", "slept",
    "total", "amount", "due", "invoice",
    "mix", "flour", "sugar", "recipe",
]


class BagOfWordsProvider(EmbeddingProvider):
    """One dimension per vocabulary word; text without vocabulary words has no vector."""

    def __init__(self, vocab: list[str] = VOCAB) -> None:
        super().__init__(EmbeddingModelSpec("test/bag-of-words", len(vocab), 512, 0.0))
        self._index = {w: i for i, w in enumerate(vocab)}

    def _embed_raw(self, text: str) -> list[float]:
        vector = [0.0] * self.model.dimensions
        for word in re.findall(r"\w+", text.lower()):
            if word in self._index:
                vector[self._index[word]] += 1.0
        return vector


def make_document(content: str, scope: Scope, name: str = "doc.txt", doc_id: str = "doc-1") -> Document:
    return Document(
        id=doc_id,
        scope=scope,
        name=name,
        type=DocumentType.TEXT,
        content=content,
        size=len(content.encode("utf-8")),
    )


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".folderkb.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return SqliteRepository(tmp_db)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each store implementation in turn."""
    if request.param == "memory":
        yield MemoryStore()
        return
    conn = Database(tmp_path / "store.db").connect()
    initialize(conn)
    yield SqliteRepository(conn)
    conn.close()


@pytest.fixture
def scope_a() -> Scope:
    return Scope(folder_id=1, owner_id="alice")


@pytest.fixture
def scope_b() -> Scope:
    return Scope(folder_id=2, owner_id="bob")


@pytest.fixture
def bow() -> BagOfWordsProvider:
    return BagOfWordsProvider()


@pytest.fixture
def kb(store, bow):
    """KnowledgeBase over each store, with small chunks and the bag-of-words embedding."""
    knowledge_base = KnowledgeBase(
        store,
        bow,
        chunker=SentenceChunker(max_tokens=3, overlap=50, min_chunk_size=0),
        max_workers=2,
    )
    yield knowledge_base
    knowledge_base.pipeline.shutdown(wait=True)


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run CLI commands from an empty tmp_path with no env overrides.

    The global config lowers ``chunking.min_chunk_size`` to 0 so one-sentence
    fixture files still produce a chunk; project files can override it.
    """
    monkeypatch.chdir(tmp_path)
    global_cfg = tmp_path / "global.yaml"
    global_cfg.write_text("chunking:\n  min_chunk_size: 0\n", encoding="utf-8")
    monkeypatch.setattr("folderkb.config._GLOBAL_CONFIG_PATH", global_cfg)
    monkeypatch.delenv("FOLDERKB_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("FOLDERKB_STORAGE_BACKEND", raising=False)
    return tmp_path
