"""Scope-isolated context building: RAG retrieval spliced into the system prompt.

Pipeline:
  1. If RAG is enabled for the scope, fetch the best chunks of that scope
     for the query (threshold filtered, ``max_rag_tokens`` bounded).
  2. Wrap them in scope-identifying delimiters inside an augmented system
     prompt that carries the isolation instructions.
  3. Reserve ``max_rag_tokens`` on top of the caller's reserve so retrieved
     content is budgeted ahead of conversation history.
  4. Assemble with ``build_context``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime

from folderkb.db.models import Scope
from folderkb.errors import FolderKBError, ValidationError
from folderkb.ingest.base import TokenEstimator, estimate_tokens
from folderkb.rag.assembler import DEFAULT_LIMITS, Message, MessageContext, TokenLimits, build_context
from folderkb.service import KnowledgeBase

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 200

NO_RESOURCES_NOTE = (
    "No resources are available in this folder. "
    "Give general help and mention that no folder resources are loaded."
)


@dataclass
class ScopeConfig:
    """Retrieval settings for one scope.

    Attributes:
        include_rag_data: Retrieve folder content into the system prompt.
        max_rag_tokens: Budget for retrieved content (also added to the reserve).
        similarity_threshold: Minimum cosine similarity for a chunk to be used.
        max_conversation_tokens: Conversation budget hint for callers. Not
            applied by assembly, whose budget is ``max_tokens - reserve_tokens``.
    """

    include_rag_data: bool = True
    max_rag_tokens: int = 2000
    similarity_threshold: float = 0.7
    max_conversation_tokens: int = 4000

    def __post_init__(self) -> None:
        if self.max_rag_tokens < 0:
            raise ValidationError("max_rag_tokens must be >= 0")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValidationError("similarity_threshold must be within [0, 1]")


@dataclass
class ScopeStats:
    document_count: int = 0
    chunk_count: int = 0
    embedded_chunk_count: int = 0
    total_tokens: int = 0
    last_updated: datetime | None = None


@dataclass
class RetrievalPreview:
    content: str
    similarity: float
    source: str


class FolderContextOrchestrator:
    """Builds scope-isolated message contexts on top of a KnowledgeBase.

    Args:
        kb: Source of retrieved content.
        defaults: ScopeConfig used for scopes without overrides.
        estimator: Token estimate passed to the assembler.
    """

    def __init__(
        self,
        kb: KnowledgeBase,
        defaults: ScopeConfig | None = None,
        estimator: TokenEstimator = estimate_tokens,
    ) -> None:
        self._kb = kb
        self._defaults = defaults or ScopeConfig()
        self._estimate = estimator
        self._configs: dict[Scope, ScopeConfig] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Per-scope configuration
    # ------------------------------------------------------------------

    def set_scope_config(self, scope: Scope, **overrides: object) -> ScopeConfig:
        """Override fields of *scope*'s config; unspecified fields keep their value."""
        with self._lock:
            config = replace(self._configs.get(scope, self._defaults), **overrides)
            self._configs[scope] = config
        return config

    def get_scope_config(self, scope: Scope) -> ScopeConfig:
        with self._lock:
            return self._configs.get(scope, self._defaults)

    def clear_scope_config(self, scope: Scope) -> None:
        with self._lock:
            self._configs.pop(scope, None)

    # ------------------------------------------------------------------
    # Context building
    # ------------------------------------------------------------------

    def build_folder_context(
        self,
        scope: Scope,
        messages: list[Message],
        query: str | None = None,
        base_prompt: str = "",
        limits: TokenLimits | None = None,
    ) -> MessageContext:
        """Assemble *messages* under a system prompt augmented with *scope*'s content.

        Args:
            scope: The only scope retrieval may read.
            messages: Conversation history, oldest first.
            query: Retrieval query; defaults to the latest user message.
            base_prompt: System prompt to extend.
            limits: Assembly limits; ``reserve_tokens`` is raised by
                ``max_rag_tokens`` when RAG is enabled.
        """
        config = self.get_scope_config(scope)
        if query is None:
            query = next((m.content for m in reversed(messages) if m.role == "user"), "")

        rag_block = ""
        if config.include_rag_data and query.strip():
            rag_block = self._rag_block(scope, query, config)

        prompt = build_scope_prompt(base_prompt, scope, rag_block)
        return build_context(messages, prompt, self._apply_limits(limits, config), self._estimate)

    def _rag_block(self, scope: Scope, query: str, config: ScopeConfig) -> str:
        try:
            content = self._kb.build_context_for_query(
                scope,
                query,
                max_tokens=config.max_rag_tokens,
                similarity_threshold=config.similarity_threshold,
            )
        except FolderKBError as exc:
            logger.warning("RAG retrieval failed for scope %s: %s", scope, exc)
            return ""
        if not content:
            return ""
        return (
            f"\n--- FOLDER CONTEXT (Folder ID: {scope.folder_id}) ---\n"
            f"{content}\n"
            f"--- END FOLDER CONTEXT ---\n"
        )

    @staticmethod
    def _apply_limits(limits: TokenLimits | None, config: ScopeConfig) -> TokenLimits:
        base = limits if limits is not None else replace(DEFAULT_LIMITS, reserve_tokens=0)
        rag_reserve = config.max_rag_tokens if config.include_rag_data else 0
        return replace(base, reserve_tokens=base.reserve_tokens + rag_reserve)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_scope_stats(self, scope: Scope) -> ScopeStats:
        """Counts for *scope*; zeroed when the store cannot be read."""
        try:
            chunks = self._kb.get_chunks(scope)
            graph = self._kb.get_knowledge_graph(scope)
            return ScopeStats(
                document_count=len(self._kb.get_documents(scope)),
                chunk_count=len(chunks),
                embedded_chunk_count=self._kb.count_embeddings(scope),
                total_tokens=sum(c.token_count for c in chunks),
                last_updated=graph.updated_at if graph else None,
            )
        except FolderKBError as exc:
            logger.warning("Stats unavailable for scope %s: %s", scope, exc)
            return ScopeStats()

    def preview_retrieval(self, scope: Scope, query: str, limit: int = 3) -> list[RetrievalPreview]:
        """Show what retrieval would return for *query*, for debugging."""
        return [
            RetrievalPreview(
                content=r.chunk.content[:_PREVIEW_CHARS] + "...",
                similarity=r.similarity,
                source=r.chunk.metadata.document_name or "Unknown",
            )
            for r in self._kb.search_similar_content(scope, query, k=limit)
        ]

    def cleanup_scope(self, scope: Scope) -> int:
        """Forget *scope*'s config and delete all of its stored data."""
        self.clear_scope_config(scope)
        return self._kb.cleanup_scope(scope)


def build_scope_prompt(base_prompt: str, scope: Scope, rag_block: str) -> str:
    """Extend *base_prompt* with isolation rules and, when present, *rag_block*."""
    sections = [
        base_prompt,
        "\n\n## FOLDER CONTEXT ISOLATION\n",
        f"You are working inside folder {scope.folder_id}. ",
        "Use only the information supplied for this folder below. ",
        "Do not bring in content from other folders, other users or outside sources.",
    ]
    if rag_block.strip():
        sections += [
            "\n\n## AVAILABLE FOLDER RESOURCES\n",
            "These resources from this folder are available for reference:",
            rag_block,
            "\n\nPrefer these resources when answering. If they do not contain the ",
            "answer, say that the information is not available in this folder.",
        ]
    else:
        sections.append("\n\n" + NO_RESOURCES_NOTE)
    sections += [
        "\n\n## STRICT ISOLATION REQUIREMENT\n",
        "Keep this folder's context separate from every other conversation. ",
        "Each folder is an independent knowledge space.",
    ]
    return "".join(sections)
