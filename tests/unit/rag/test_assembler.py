"""Tests for the token-bounded context assembler."""

from __future__ import annotations

import pytest

from folderkb.errors import ValidationError
from folderkb.rag.assembler import (
    DEFAULT_LIMITS,
    Message,
    MessageContext,
    ProjectContext,
    TokenLimits,
    build_context,
    build_system_prompt,
    get_model_limits,
    message_tokens,
    truncate_text,
    validate_context,
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

# Every helper message is 4 characters: 1 estimated token + 10 overhead.
MSG_COST = 11
SYSTEM = "sys!"


def _u(tag: str) -> Message:
    return Message(role="user", content=f"u{tag:<3}")


def _a(tag: str) -> Message:
    return Message(role="assistant", content=f"a{tag:<3}")


def _limits(max_tokens: int, max_messages: int = 20) -> TokenLimits:
    return TokenLimits(max_tokens=max_tokens, max_messages=max_messages, reserve_tokens=0)


# ------------------------------------------------------------------
# Message / limits
# ------------------------------------------------------------------


def test_message_rejects_unknown_role():
    with pytest.raises(ValidationError):
        Message(role="tool", content="x")  # type: ignore[arg-type]


def test_message_tokens_adds_overhead():
    assert message_tokens(Message(role="user", content="x" * 8)) == 12


def test_get_model_limits_known_and_unknown():
    assert get_model_limits("gpt-4o") == TokenLimits(120_000, 20, 4000)
    assert get_model_limits("gpt-3.5-turbo") == TokenLimits(4000, 20, 1000)
    assert get_model_limits("no-such-model") == DEFAULT_LIMITS


# ------------------------------------------------------------------
# build_context
# ------------------------------------------------------------------


def test_empty_history_yields_system_only():
    ctx = build_context([], SYSTEM, _limits(100))
    assert [m.role for m in ctx.messages] == ["system"]
    assert ctx.messages[0].content == SYSTEM
    assert ctx.total_tokens == MSG_COST
    assert not ctx.truncated


def test_everything_fits_in_chronological_order():
    history = [_u("1"), _a("1"), _u("2")]
    ctx = build_context(history, SYSTEM, _limits(100))
    assert ctx.messages == [Message("system", SYSTEM), *history]
    assert ctx.total_tokens == 4 * MSG_COST
    assert not ctx.truncated


def test_lone_oldest_message_is_not_admitted():
    history = [_a("0"), _u("1"), _a("1"), _u("2")]
    ctx = build_context(history, SYSTEM, _limits(100))
    assert ctx.messages[1:] == history[1:]


def test_token_budget_stops_at_first_pair_that_does_not_fit():
    history = [_u("0"), _a("0"), _u("1"), _a("1"), _u("2")]
    # available = 50 - 11 = 39: latest (11) + one pair (22) fit, the next pair does not.
    ctx = build_context(history, SYSTEM, _limits(50))
    assert ctx.messages[1:] == [_u("1"), _a("1"), _u("2")]
    assert ctx.total_tokens == 4 * MSG_COST
    assert ctx.truncated


def test_message_cap_counts_system_message():
    history = [_u("0"), _a("0"), _u("1"), _a("1"), _u("2")]
    ctx = build_context(history, SYSTEM, _limits(1000, max_messages=4))
    assert len(ctx.messages) == 4
    assert ctx.messages[1:] == [_u("1"), _a("1"), _u("2")]
    assert ctx.truncated


def test_oversized_latest_user_message_is_truncated():
    long_text = "word " * 100
    ctx = build_context([Message("user", long_text)], SYSTEM, _limits(60))
    kept = ctx.messages[-1]
    assert kept.role == "user"
    assert kept.content.endswith("...")
    assert len(kept.content) < len(long_text)
    assert ctx.truncated


def test_reserve_tokens_shrink_the_budget():
    history = [_u("0"), _a("0"), _u("1")]
    roomy = build_context(history, SYSTEM, TokenLimits(max_tokens=100, reserve_tokens=0))
    tight = build_context(history, SYSTEM, TokenLimits(max_tokens=100, reserve_tokens=70))
    assert len(roomy.messages) == 4
    assert len(tight.messages) == 2
    assert tight.truncated


def test_as_dicts_shape():
    ctx = build_context([_u("1")], SYSTEM, _limits(100))
    assert ctx.as_dicts() == [
        {"role": "system", "content": SYSTEM},
        {"role": "user", "content": "u1  "},
    ]


# ------------------------------------------------------------------
# truncate_text
# ------------------------------------------------------------------


def test_truncate_text_short_text_unchanged():
    assert truncate_text("hello", 10) == "hello"


def test_truncate_text_cuts_at_late_word_boundary():
    text = "a" * 14 + " bbbbbbbb"
    assert truncate_text(text, 4) == "a" * 14 + "..."


def test_truncate_text_cuts_mid_word_when_boundary_is_early():
    assert truncate_text("hello world again", 4) == "hello world agai..."


# ------------------------------------------------------------------
# validate_context
# ------------------------------------------------------------------


def test_validate_context_ok():
    ctx = MessageContext(messages=[Message("system", "s")], total_tokens=100)
    assert validate_context(ctx, "gpt-4").valid


def test_validate_context_too_many_tokens():
    ctx = MessageContext(messages=[Message("system", "s")], total_tokens=5000)
    result = validate_context(ctx, "gpt-3.5-turbo")
    assert not result.valid
    assert "5000" in result.reason and "4000" in result.reason


def test_validate_context_too_many_messages():
    ctx = MessageContext(messages=[Message("user", "x")] * 21, total_tokens=10)
    result = validate_context(ctx, "gpt-4")
    assert not result.valid
    assert result.reason.startswith("Too many messages")


# ------------------------------------------------------------------
# build_system_prompt
# ------------------------------------------------------------------


def test_build_system_prompt_without_project():
    assert build_system_prompt("Be helpful.") == "Be helpful."


def test_build_system_prompt_lists_project_details():
    project = ProjectContext(
        description="Invoice tracker",
        tech_stack=["python", "sqlite"],
        files=[f"f{i}.py" for i in range(12)],
    )
    prompt = build_system_prompt("Be helpful.", project)
    assert prompt.startswith("Be helpful.\n\n## Project Context")
    assert "Project Description: Invoice tracker" in prompt
    assert "Tech Stack: python, sqlite" in prompt
    assert "f9.py (and 2 more)" in prompt
    assert "f10.py" not in prompt
