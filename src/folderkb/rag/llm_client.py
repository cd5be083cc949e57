"""LiteLLM client wrapper: embeddings, token counting, API key validation.

All remote model calls route through this module. LiteLLM's built-in retry
is used (``num_retries``), so timeout and retry policy for a remote embedding
backend live here rather than in the core.
"""

from __future__ import annotations

import logging
import os

import litellm

from folderkb.ingest.base import TokenEstimator, estimate_tokens

logger = logging.getLogger(__name__)

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True
litellm.set_verbose = False  # type: ignore[assignment]


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
    "local": None,
}


def provider_of(model: str) -> str:
    """Return the provider prefix of a 'provider/model' string (default 'openai')."""
    return model.split("/")[0].lower() if "/" in model else "openai"


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = provider_of(model)
    env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


def embed(model: str, text: str, num_retries: int = 3) -> list[float]:
    """Call litellm.embedding() with retry/backoff. Returns the raw vector.

    Args:
        model: LiteLLM embedding model string (provider/model format).
        text: Text to embed.
        num_retries: Number of retries on transient errors.
    """
    response = litellm.embedding(
        model=model,
        input=[text],
        num_retries=num_retries,
    )
    return [float(v) for v in response.data[0]["embedding"]]


def count_tokens(model: str, text: str) -> int:
    """Count tokens in *text* for *model* using LiteLLM's provider-aware counter.

    Falls back to the character estimate (``ceil(chars / 4)``) if the model is
    not supported by ``litellm.token_counter()``.
    """
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception as exc:  # litellm raises assorted provider errors
        logger.debug("token_counter unavailable for %s (%s); using estimate", model, exc)
        return estimate_tokens(text)


def token_estimator(model: str) -> TokenEstimator:
    """Return a ``TokenEstimator`` bound to *model*'s tokenizer.

    Pluggable replacement for ``estimate_tokens`` in the chunker and assembler.
    """

    def _estimate(text: str) -> int:
        return count_tokens(model, text) if text else 0

    return _estimate
