"""Sentence chunker: greedy sentence packing with a sentence-count overlap.

Strategy:
  1. Split the content into sentence spans ending at ``.``, ``!`` or ``?``.
  2. Pack spans into a buffer until the next one would push the buffer's
     estimate past ``max_tokens``; then emit the buffer.
  3. Seed the next buffer with up to ``overlap`` trailing sentences of the
     emitted chunk, dropping the oldest until seed + trigger fits.
  4. At end of input, emit the remainder only if it reaches
     ``min_chunk_size``; a shorter remainder is dropped, so a document
     shorter than ``min_chunk_size`` yields no chunks.
"""

from __future__ import annotations

import re
from typing import Iterator

from folderkb.db.models import Chunk, Document
from folderkb.ingest.base import BaseChunker

# Text up to and including a run of terminal punctuation, or up to end of input.
_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")

Span = tuple[int, int]


def split_sentences(text: str) -> list[Span]:
    """Return ``(start, end)`` spans of the sentences in *text*.

    Spans exclude surrounding whitespace; whitespace-only fragments are skipped.
    """
    spans: list[Span] = []
    for match in _SENTENCE_RE.finditer(text):
        raw = match.group()
        stripped = raw.strip()
        if not stripped:
            continue
        start = match.start() + (len(raw) - len(raw.lstrip()))
        spans.append((start, start + len(stripped)))
    return spans


class SentenceChunker(BaseChunker):
    """Split a document into bounded, overlapping sentence-aligned chunks.

    Defaults: 512 estimated tokens per chunk, 50-sentence overlap window,
    100-token minimum for the trailing remainder.

    A single sentence larger than ``max_tokens`` cannot be split and becomes
    its own oversized chunk.
    """

    def iter_chunks(self, document: Document) -> Iterator[Chunk]:
        text = document.content
        buffer: list[Span] = []
        index = 0

        for span in split_sentences(text):
            if buffer and self._span_tokens(text, buffer[0][0], span[1]) > self.max_tokens:
                yield self._make_chunk(document, buffer[0][0], buffer[-1][1], index)
                index += 1
                buffer = self._overlap_seed(text, buffer, span)
            buffer.append(span)

        if not buffer:
            return
        tail_tokens = self._span_tokens(text, buffer[0][0], buffer[-1][1])
        if tail_tokens >= self.min_chunk_size:
            yield self._make_chunk(document, buffer[0][0], buffer[-1][1], index)

    def _overlap_seed(self, text: str, closed: list[Span], trigger: Span) -> list[Span]:
        """Trailing sentences of *closed* that still fit alongside *trigger*."""
        if self.overlap == 0:
            return []
        seed = closed[-self.overlap:]
        while seed and self._span_tokens(text, seed[0][0], trigger[1]) > self.max_tokens:
            seed = seed[1:]
        return seed

    def _span_tokens(self, text: str, start: int, end: int) -> int:
        return self.estimate(text[start:end])
