"""Context assembler: token-bounded message window from history + system prompt.

Pipeline:
  1. Build the system message; available = max_tokens - reserve_tokens - system.
  2. Empty history → the system message alone, not truncated.
  3. The latest message, if it is a user message, is always kept. When it
     alone exceeds the budget it is cut at a word boundary and marked.
  4. Older history is admitted two messages at a time, newest pair first,
     while both the token budget and the message cap hold. The first pair
     that does not fit ends the walk.
  5. Output: system message, then admitted history in chronological order.

Message cost = estimate_tokens(content) + 10 (role and formatting overhead).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Literal

from folderkb.errors import ValidationError
from folderkb.ingest.base import TokenEstimator, estimate_tokens

Role = Literal["system", "user", "assistant"]

_ROLES = ("system", "user", "assistant")
_MESSAGE_OVERHEAD = 10
_ELLIPSIS = "..."


@dataclass
class Message:
    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValidationError(f"Unknown message role {self.role!r}")

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class TokenLimits:
    """Budget for one assembled context.

    Attributes:
        max_tokens: Model context window (estimated tokens).
        max_messages: Upper bound on messages returned, system message included.
        reserve_tokens: Tokens held back for the response and injected content.
    """

    max_tokens: int = 8000
    max_messages: int = 20
    reserve_tokens: int = 1500


@dataclass
class MessageContext:
    messages: list[Message] = field(default_factory=list)
    total_tokens: int = 0
    truncated: bool = False

    def as_dicts(self) -> list[dict[str, str]]:
        """Messages in the ``[{"role": ..., "content": ...}]`` shape LiteLLM expects."""
        return [m.as_dict() for m in self.messages]


@dataclass
class ContextValidation:
    valid: bool
    reason: str | None = None


DEFAULT_LIMITS = TokenLimits()

# Per-model overrides, merged over DEFAULT_LIMITS.
MODEL_LIMITS: dict[str, dict[str, int]] = {
    "gpt-4o": {"max_tokens": 120_000, "reserve_tokens": 4000},
    "gpt-4o-mini": {"max_tokens": 120_000, "reserve_tokens": 1500},
    "gpt-4": {"max_tokens": 8000, "reserve_tokens": 2000},
    "gpt-3.5-turbo": {"max_tokens": 4000, "reserve_tokens": 1000},
    "claude-3-sonnet": {"max_tokens": 200_000, "reserve_tokens": 4000},
    "claude-3-haiku": {"max_tokens": 200_000, "reserve_tokens": 2000},
    "llama-2-70b": {"max_tokens": 4000, "reserve_tokens": 1000},
}


def get_model_limits(model: str) -> TokenLimits:
    """Return the limits for *model*; unknown models get the defaults."""
    return replace(DEFAULT_LIMITS, **MODEL_LIMITS.get(model, {}))


def message_tokens(message: Message, estimator: TokenEstimator = estimate_tokens) -> int:
    return estimator(message.content) + _MESSAGE_OVERHEAD


def truncate_text(text: str, max_tokens: int) -> str:
    """Cut *text* to roughly *max_tokens* and append an ellipsis.

    The window is ``max_tokens * 4`` characters. If its last space lies past
    80% of the window the cut happens there, otherwise mid-word.
    """
    max_chars = max(0, max_tokens) * 4
    if len(text) <= max_chars:
        return text
    window = text[:max_chars]
    last_space = window.rfind(" ")
    if last_space > max_chars * 0.8:
        return window[:last_space] + _ELLIPSIS
    return window + _ELLIPSIS


def build_context(
    messages: list[Message],
    system_prompt: str,
    limits: TokenLimits | None = None,
    estimator: TokenEstimator = estimate_tokens,
) -> MessageContext:
    """Assemble the message window sent to the model.

    Args:
        messages: Conversation history, oldest first.
        system_prompt: Content of the leading system message.
        limits: Token and message budget (defaults to ``DEFAULT_LIMITS``).
        estimator: Token estimate for message content.

    Returns:
        MessageContext whose ``messages`` start with the system message.
    """
    limits = limits or DEFAULT_LIMITS
    system_message = Message(role="system", content=system_prompt)
    system_tokens = message_tokens(system_message, estimator)
    available = limits.max_tokens - limits.reserve_tokens - system_tokens

    if not messages:
        return MessageContext(messages=[system_message], total_tokens=system_tokens)

    newest_first = list(reversed(messages))
    selected: list[Message] = []
    used = 0
    truncated = False

    latest = newest_first[0]
    if latest.role == "user":
        tokens = message_tokens(latest, estimator)
        if tokens <= available:
            selected.append(latest)
            used += tokens
        else:
            content = truncate_text(latest.content, available - _MESSAGE_OVERHEAD)
            selected.append(Message(role=latest.role, content=content))
            used += estimator(content) + _MESSAGE_OVERHEAD
            truncated = True

    # Pairs are (newest_first[i], newest_first[i + 1]); a lone oldest message is never admitted.
    for i in range(1, len(newest_first) - 1, 2):
        later, earlier = newest_first[i], newest_first[i + 1]
        pair_tokens = message_tokens(later, estimator) + message_tokens(earlier, estimator)
        # +1 for the system message.
        if used + pair_tokens <= available and len(selected) + 1 + 2 <= limits.max_messages:
            selected.extend((later, earlier))
            used += pair_tokens
        else:
            truncated = True
            break

    selected.reverse()
    return MessageContext(
        messages=[system_message, *selected],
        total_tokens=system_tokens + used,
        truncated=truncated,
    )


def validate_context(context: MessageContext, model: str) -> ContextValidation:
    """Check an assembled context against *model*'s limits, independently of assembly."""
    limits = get_model_limits(model)
    if context.total_tokens > limits.max_tokens:
        return ContextValidation(
            valid=False,
            reason=(
                f"Context too long: {context.total_tokens} tokens exceeds "
                f"{limits.max_tokens} limit"
            ),
        )
    if len(context.messages) > limits.max_messages:
        return ContextValidation(
            valid=False,
            reason=(
                f"Too many messages: {len(context.messages)} exceeds "
                f"{limits.max_messages} limit"
            ),
        )
    return ContextValidation(valid=True)


@dataclass
class ProjectContext:
    description: str | None = None
    tech_stack: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)


_MAX_LISTED_FILES = 10


def build_system_prompt(base_prompt: str, project: ProjectContext | None = None) -> str:
    """Append a '## Project Context' section to *base_prompt* when *project* is given."""
    if project is None:
        return base_prompt

    lines = [f"{base_prompt}\n\n## Project Context"]
    if project.description:
        lines.append(f"Project Description: {project.description}")
    if project.tech_stack:
        lines.append(f"Tech Stack: {', '.join(project.tech_stack)}")
    if project.files:
        listed = ", ".join(project.files[:_MAX_LISTED_FILES])
        extra = len(project.files) - _MAX_LISTED_FILES
        if extra > 0:
            listed += f" (and {extra} more)"
        lines.append(f"Relevant Files: {listed}")
    return "\n".join(lines)
