"""Embedding providers and the embedding model registry.

Every provider honours the same contract: ``embed(text)`` returns a vector of
exactly ``model.dimensions`` floats with unit L2 norm. Callers depend on that
contract only, so the deterministic local providers and the LiteLLM-backed
provider are interchangeable.
"""

from __future__ import annotations

import hashlib
import math
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from folderkb.errors import ComputationError, ValidationError
from folderkb.ingest.base import TokenEstimator, estimate_tokens
from folderkb.rag import llm_client


@dataclass(frozen=True)
class EmbeddingModelSpec:
    """Static properties of an embedding model.

    Attributes:
        name: Model identifier in 'provider/model' form.
        dimensions: Length of every vector the model produces.
        max_input_tokens: Longest input (estimated tokens) the model accepts.
        cost_per_1k_tokens: USD per 1 000 input tokens (0 for local models).
    """

    name: str
    dimensions: int
    max_input_tokens: int
    cost_per_1k_tokens: float = 0.0


EMBEDDING_MODELS: dict[str, EmbeddingModelSpec] = {
    spec.name: spec
    for spec in (
        EmbeddingModelSpec("openai/text-embedding-3-small", 1536, 8191, 0.00002),
        EmbeddingModelSpec("openai/text-embedding-3-large", 3072, 8191, 0.00013),
        EmbeddingModelSpec("local/hashing-bow", 384, 8192, 0.0),
        EmbeddingModelSpec("local/seeded-random", 384, 512, 0.0),
    )
}

DEFAULT_EMBEDDING_MODEL = "local/hashing-bow"

_WORD_RE = re.compile(r"\w+")


def get_embedding_model(name: str) -> EmbeddingModelSpec:
    """Look up *name* in the registry.

    Raises:
        ValidationError: If the model is not registered.
    """
    try:
        return EMBEDDING_MODELS[name]
    except KeyError:
        known = ", ".join(sorted(EMBEDDING_MODELS))
        raise ValidationError(f"Unknown embedding model '{name}'. Known models: {known}") from None


def estimate_cost(model: str, tokens: int) -> float:
    """Return the USD cost of embedding *tokens* tokens with *model*."""
    return get_embedding_model(model).cost_per_1k_tokens * tokens / 1000


def l2_normalize(vector: list[float]) -> list[float]:
    """Divide *vector* by its magnitude.

    Raises:
        ComputationError: If the magnitude is zero or not finite.
    """
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0.0 or not math.isfinite(magnitude):
        raise ComputationError("Cannot normalise a zero-magnitude or non-finite vector")
    return [v / magnitude for v in vector]


class EmbeddingProvider(ABC):
    """Text → fixed-dimension, unit-normalised vector.

    Subclasses implement ``_embed_raw()``; the base class clips the input to
    the model's token limit, checks the dimension, and normalises.
    """

    def __init__(
        self,
        model: EmbeddingModelSpec | str,
        estimator: TokenEstimator = estimate_tokens,
    ) -> None:
        self.model = get_embedding_model(model) if isinstance(model, str) else model
        self._estimate = estimator

    @property
    def dimensions(self) -> int:
        return self.model.dimensions

    def embed(self, text: str) -> list[float]:
        """Embed *text*.

        Raises:
            ComputationError: If the backend returns a vector of the wrong
                length or one that cannot be normalised (e.g. no tokens).
        """
        raw = self._embed_raw(self._clip(text))
        if len(raw) != self.model.dimensions:
            raise ComputationError(
                f"Model '{self.model.name}' returned {len(raw)} dimensions, "
                f"expected {self.model.dimensions}"
            )
        return l2_normalize(raw)

    def _clip(self, text: str) -> str:
        if self._estimate(text) <= self.model.max_input_tokens:
            return text
        return text[: self.model.max_input_tokens * 4]

    @abstractmethod
    def _embed_raw(self, text: str) -> list[float]:
        """Return the un-normalised vector for *text*."""


class HashingEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words vectors via feature hashing.

    Each lower-cased word increments one bucket chosen by a keyed BLAKE2b
    hash, so texts sharing words get positive cosine similarity. Text
    without any word characters has no vector (``ComputationError``).
    """

    def __init__(
        self,
        model: EmbeddingModelSpec | str = "local/hashing-bow",
        seed: int = 0,
        estimator: TokenEstimator = estimate_tokens,
    ) -> None:
        super().__init__(model, estimator)
        self._salt = str(seed).encode()[:16]

    def _embed_raw(self, text: str) -> list[float]:
        vector = [0.0] * self.model.dimensions
        for word in _WORD_RE.findall(text.lower()):
            digest = hashlib.blake2b(word.encode(), digest_size=8, salt=self._salt).digest()
            vector[int.from_bytes(digest, "big") % self.model.dimensions] += 1.0
        return vector


class SeededEmbeddingProvider(EmbeddingProvider):
    """Pseudo-random vectors that are a pure function of (seed, text).

    Carries no semantic signal; use it where only the vector contract matters.
    """

    def __init__(
        self,
        model: EmbeddingModelSpec | str = "local/seeded-random",
        seed: int = 0,
        estimator: TokenEstimator = estimate_tokens,
    ) -> None:
        super().__init__(model, estimator)
        self.seed = seed

    def _embed_raw(self, text: str) -> list[float]:
        rng = random.Random(f"{self.seed}:{text}")
        return [rng.random() - 0.5 for _ in range(self.model.dimensions)]


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Remote embedding model called through LiteLLM.

    The API key is validated at construction so a misconfigured provider
    fails before any ingestion starts.
    """

    def __init__(
        self,
        model: EmbeddingModelSpec | str,
        num_retries: int = 3,
        estimator: TokenEstimator = estimate_tokens,
        check_api_key: bool = True,
    ) -> None:
        super().__init__(model, estimator)
        self.num_retries = num_retries
        if check_api_key:
            llm_client.validate_api_key(self.model.name)

    def _embed_raw(self, text: str) -> list[float]:
        try:
            return llm_client.embed(self.model.name, text, num_retries=self.num_retries)
        except Exception as exc:  # litellm raises assorted provider errors
            raise ComputationError(f"Embedding call to '{self.model.name}' failed: {exc}") from exc


def create_embedding_provider(model: str, seed: int = 0) -> EmbeddingProvider:
    """Build the provider registered under *model*.

    Raises:
        ValidationError: If *model* is not in the registry.
    """
    spec = get_embedding_model(model)
    if spec.name == "local/hashing-bow":
        return HashingEmbeddingProvider(spec, seed=seed)
    if spec.name == "local/seeded-random":
        return SeededEmbeddingProvider(spec, seed=seed)
    return LiteLLMEmbeddingProvider(spec)
