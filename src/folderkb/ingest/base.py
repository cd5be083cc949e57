"""Base chunker interface and the token estimate shared by every layer."""

from __future__ import annotations

import math
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Iterator

from folderkb.db.models import Chunk, ChunkMetadata, Document
from folderkb.errors import ValidationError

TokenEstimator = Callable[[str], int]


def estimate_tokens(text: str) -> int:
    """Approximate token count: ``ceil(chars / 4)``.

    Deliberately not a tokenizer. Budgets across chunking, retrieval and
    context assembly are all expressed in this unit.
    """
    return math.ceil(len(text) / 4)


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``iter_chunks()``; ``chunk()`` materialises it.
    Each emitted Chunk's content is an exact slice of the document content
    (``content[start_offset:end_offset]``).
    """

    def __init__(
        self,
        max_tokens: int = 512,
        overlap: int = 50,
        min_chunk_size: int = 100,
        estimator: TokenEstimator = estimate_tokens,
    ) -> None:
        if max_tokens < 1:
            raise ValidationError("max_tokens must be >= 1")
        if overlap < 0:
            raise ValidationError("overlap must be >= 0")
        if min_chunk_size < 0:
            raise ValidationError("min_chunk_size must be >= 0")
        self.max_tokens = max_tokens
        self.overlap = overlap
        self.min_chunk_size = min_chunk_size
        self.estimate = estimator

    @abstractmethod
    def iter_chunks(self, document: Document) -> Iterator[Chunk]:
        """Yield the chunks of *document* in ``chunk_index`` order."""

    def chunk(self, document: Document) -> list[Chunk]:
        return list(self.iter_chunks(document))

    def _make_chunk(self, document: Document, start: int, end: int, index: int) -> Chunk:
        content = document.content[start:end]
        return Chunk(
            id=str(uuid.uuid4()),
            document_id=document.id,
            scope=document.scope,
            content=content,
            start_offset=start,
            end_offset=end,
            chunk_index=index,
            token_count=self.estimate(content),
            metadata=ChunkMetadata(
                document_name=document.name,
                document_type=document.type,
            ),
        )
