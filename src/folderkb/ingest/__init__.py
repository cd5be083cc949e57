"""folderkb ingest pipeline: chunker, embedding providers, graph builder."""

from folderkb.ingest.base import BaseChunker, estimate_tokens
from folderkb.ingest.embedding import (
    EMBEDDING_MODELS,
    EmbeddingProvider,
    HashingEmbeddingProvider,
    LiteLLMEmbeddingProvider,
    SeededEmbeddingProvider,
    create_embedding_provider,
)
from folderkb.ingest.graph import KnowledgeGraphBuilder
from folderkb.ingest.pipeline import IngestionPipeline, IngestionReport, IngestionStatus
from folderkb.ingest.sentence import SentenceChunker

__all__ = [
    "BaseChunker",
    "estimate_tokens",
    "EMBEDDING_MODELS",
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "LiteLLMEmbeddingProvider",
    "SeededEmbeddingProvider",
    "create_embedding_provider",
    "KnowledgeGraphBuilder",
    "IngestionPipeline",
    "IngestionReport",
    "IngestionStatus",
    "SentenceChunker",
]
