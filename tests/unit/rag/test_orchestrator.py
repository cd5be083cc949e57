"""Tests for scope-isolated context building."""

from __future__ import annotations

import pytest

from folderkb.errors import ValidationError
from folderkb.rag.assembler import Message, TokenLimits
from folderkb.rag.orchestrator import (
    NO_RESOURCES_NOTE,
    FolderContextOrchestrator,
    ScopeConfig,
    ScopeStats,
    build_scope_prompt,
)

INVOICE = "Total amount due invoice."
RECIPE = "Mix flour sugar recipe."
QUESTION = "What is the total amount due?"


@pytest.fixture
def loaded(kb, scope_a, scope_b):
    """Invoice in scope A, recipe in scope B, both fully ingested."""
    kb.add_document(scope_a, "invoice.txt", INVOICE)
    kb.add_document(scope_b, "recipe.txt", RECIPE)
    kb.wait_for_ingestion(timeout=10)
    return kb


@pytest.fixture
def orchestrator(loaded):
    return FolderContextOrchestrator(loaded)


def _system(ctx) -> str:
    assert ctx.messages[0].role == "system"
    return ctx.messages[0].content


# ------------------------------------------------------------------
# Isolation
# ------------------------------------------------------------------


def test_own_folder_content_is_injected(orchestrator, scope_a):
    ctx = orchestrator.build_folder_context(scope_a, [Message("user", QUESTION)], base_prompt="You help.")
    system = _system(ctx)
    assert system.startswith("You help.")
    assert "--- FOLDER CONTEXT (Folder ID: 1) ---" in system
    assert "--- invoice.txt ---" in system
    assert INVOICE in system
    assert "--- END FOLDER CONTEXT ---" in system
    assert "## FOLDER CONTEXT ISOLATION" in system
    assert "## STRICT ISOLATION REQUIREMENT" in system
    assert NO_RESOURCES_NOTE not in system


def test_other_folder_content_never_leaks(orchestrator, scope_b):
    ctx = orchestrator.build_folder_context(scope_b, [Message("user", QUESTION)])
    system = _system(ctx)
    assert INVOICE not in system
    assert "invoice.txt" not in system
    assert NO_RESOURCES_NOTE in system
    assert "## AVAILABLE FOLDER RESOURCES" not in system


def test_invoice_and_recipe_folders_stay_apart(kb, scope_a, scope_b):
    kb.add_document(scope_a, "invoice.txt", "Total amount due: $500")
    kb.add_document(scope_b, "recipe.txt", "Mix flour and sugar")
    kb.wait_for_ingestion(timeout=10)
    orchestrator = FolderContextOrchestrator(kb)

    invoice_ctx = orchestrator.build_folder_context(scope_a, [], query="total amount due")
    system = _system(invoice_ctx)
    assert "Total amount due: $500" in system
    assert "Mix flour and sugar" not in system
    assert "recipe.txt" not in system

    recipe_ctx = orchestrator.build_folder_context(scope_b, [], query="flour and sugar")
    system = _system(recipe_ctx)
    assert "Mix flour and sugar" in system
    assert "Total amount due: $500" not in system
    assert "invoice.txt" not in system


def test_explicit_query_overrides_latest_user_message(orchestrator, scope_a):
    ctx = orchestrator.build_folder_context(
        scope_a, [Message("user", "hello there")], query="total amount due"
    )
    assert INVOICE in _system(ctx)


def test_empty_history_without_query_gets_no_resources(orchestrator, scope_a):
    ctx = orchestrator.build_folder_context(scope_a, [])
    assert len(ctx.messages) == 1
    assert NO_RESOURCES_NOTE in _system(ctx)


def test_conversation_follows_system_message(orchestrator, scope_a):
    history = [Message("user", "hi"), Message("assistant", "hello"), Message("user", QUESTION)]
    ctx = orchestrator.build_folder_context(scope_a, history)
    assert ctx.messages[1:] == history


# ------------------------------------------------------------------
# Per-scope configuration
# ------------------------------------------------------------------


def test_threshold_above_match_excludes_content(orchestrator, scope_a):
    # The invoice chunk scores about 0.87 against the question.
    orchestrator.set_scope_config(scope_a, similarity_threshold=0.9)
    ctx = orchestrator.build_folder_context(scope_a, [Message("user", QUESTION)])
    assert INVOICE not in _system(ctx)
    assert NO_RESOURCES_NOTE in _system(ctx)


def test_rag_can_be_disabled(orchestrator, scope_a):
    orchestrator.set_scope_config(scope_a, include_rag_data=False)
    ctx = orchestrator.build_folder_context(scope_a, [Message("user", QUESTION)])
    assert INVOICE not in _system(ctx)


def test_config_overrides_are_per_scope(orchestrator, scope_a, scope_b):
    updated = orchestrator.set_scope_config(scope_a, max_rag_tokens=500)
    assert updated.max_rag_tokens == 500
    assert orchestrator.get_scope_config(scope_a).max_rag_tokens == 500
    assert orchestrator.get_scope_config(scope_b) == ScopeConfig()

    orchestrator.set_scope_config(scope_a, similarity_threshold=0.5)
    assert orchestrator.get_scope_config(scope_a).max_rag_tokens == 500

    orchestrator.clear_scope_config(scope_a)
    assert orchestrator.get_scope_config(scope_a) == ScopeConfig()


def test_invalid_config_is_rejected(orchestrator, scope_a):
    with pytest.raises(ValidationError):
        orchestrator.set_scope_config(scope_a, similarity_threshold=1.5)
    with pytest.raises(ValidationError):
        ScopeConfig(max_rag_tokens=-1)


def test_rag_budget_is_added_to_reserve():
    limits = TokenLimits(max_tokens=8000, max_messages=20, reserve_tokens=1500)
    applied = FolderContextOrchestrator._apply_limits(limits, ScopeConfig(max_rag_tokens=2000))
    assert applied.reserve_tokens == 3500
    assert limits.reserve_tokens == 1500

    disabled = FolderContextOrchestrator._apply_limits(limits, ScopeConfig(include_rag_data=False))
    assert disabled.reserve_tokens == 1500

    default = FolderContextOrchestrator._apply_limits(None, ScopeConfig(max_rag_tokens=2000))
    assert default.reserve_tokens == 2000


# ------------------------------------------------------------------
# Diagnostics
# ------------------------------------------------------------------


def test_scope_stats(orchestrator, scope_a):
    stats = orchestrator.get_scope_stats(scope_a)
    assert stats.document_count == 1
    assert stats.chunk_count == 1
    assert stats.embedded_chunk_count == 1
    assert stats.total_tokens == 7
    assert stats.last_updated is not None


def test_scope_stats_for_empty_scope(kb):
    from folderkb.db.models import Scope

    stats = FolderContextOrchestrator(kb).get_scope_stats(Scope(folder_id=9, owner_id="nobody"))
    assert stats == ScopeStats()


def test_preview_retrieval(orchestrator, scope_a):
    previews = orchestrator.preview_retrieval(scope_a, "total amount due")
    assert len(previews) == 1
    assert previews[0].content == INVOICE + "..."
    assert previews[0].source == "invoice.txt"
    assert previews[0].similarity == pytest.approx(3 / (3 ** 0.5 * 2), abs=1e-4)


def test_cleanup_scope_removes_data_and_config(orchestrator, loaded, scope_a, scope_b):
    orchestrator.set_scope_config(scope_a, max_rag_tokens=10)
    assert orchestrator.cleanup_scope(scope_a) == 1
    assert loaded.get_documents(scope_a) == []
    assert loaded.get_chunks(scope_a) == []
    assert orchestrator.get_scope_config(scope_a) == ScopeConfig()
    assert len(loaded.get_documents(scope_b)) == 1


# ------------------------------------------------------------------
# build_scope_prompt
# ------------------------------------------------------------------


def test_build_scope_prompt_sections_in_order(scope_a):
    prompt = build_scope_prompt("Base.", scope_a, "\n--- block ---\n")
    isolation = prompt.index("## FOLDER CONTEXT ISOLATION")
    resources = prompt.index("## AVAILABLE FOLDER RESOURCES")
    strict = prompt.index("## STRICT ISOLATION REQUIREMENT")
    assert prompt.startswith("Base.")
    assert isolation < resources < strict
    assert "folder 1" in prompt
