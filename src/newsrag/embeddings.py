"""
Embedding provider chain for document and query vectors.

Providers are tried in a fixed priority order (Google GenAI, then OpenAI).
Any provider error is logged and swallowed; when every hosted provider is
unavailable the chain falls back to a deterministic, content-addressed local
embedding so the store stays searchable with no external dependencies.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import math
import os
import re
from collections.abc import Sequence
from typing import Any, Protocol

from google.genai import Client as GenAIClient
from google.genai.types import HttpOptions
from openai import OpenAI

from .store_config import resolve_embedding_dim

logger = logging.getLogger(__name__)


_DEFAULT_GEMINI_MODEL = "gemini-embedding-001"
_DEFAULT_OPENAI_MODEL = "text-embedding-3-small"
_DEFAULT_TIMEOUT_SECONDS = 10.0
_DEFAULT_BATCH_SIZE = 50

_TOKEN_SPLIT_RE = re.compile(r"\W+")


def tokenize(text: str | None) -> list[str]:
    """Lower-case *text* and split it on non-word boundaries."""
    if not text:
        return []
    return [token for token in _TOKEN_SPLIT_RE.split(str(text).lower()) if token]


def _token_index(token: str, dim: int) -> int:
    digest = hashlib.sha256(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % dim


def local_embed(text: str | None, dim: int) -> list[float]:
    """Bag-of-tokens hash sketch, L2-normalised.

    Identical text always yields an identical vector, across processes.
    Text without tokens maps to a unit vector on index 0.
    """
    vector = [0.0] * dim
    tokens = tokenize(text)
    if not tokens:
        vector[0] = 1.0
        return vector

    for token in tokens:
        vector[_token_index(token, dim)] += 1.0

    norm = math.sqrt(sum(value * value for value in vector))
    return [value / norm for value in vector]


def _to_plain(payload: Any) -> Any:
    # Both SDKs return pydantic models; plain dicts/lists pass through.
    if hasattr(payload, "model_dump"):
        return payload.model_dump()
    if dataclasses.is_dataclass(payload) and not isinstance(payload, type):
        return dataclasses.asdict(payload)
    return payload


def _numeric_list(value: Any) -> list[float] | None:
    if (
        isinstance(value, (list, tuple))
        and value
        and all(isinstance(item, (int, float)) and not isinstance(item, bool) for item in value)
    ):
        return [float(item) for item in value]
    return None


def _find_first_numeric_array(payload: Any) -> list[float] | None:
    found = _numeric_list(payload)
    if found is not None:
        return found
    if isinstance(payload, dict):
        children: Any = payload.values()
    elif isinstance(payload, (list, tuple)):
        children = payload
    else:
        return None
    for child in children:
        found = _find_first_numeric_array(child)
        if found is not None:
            return found
    return None


def extract_vectors(payload: Any) -> list[list[float]]:
    """Extract every embedding from a provider response.

    Understands the Google GenAI ``{"embeddings": [{"values": [...]}]}`` and
    OpenAI ``{"data": [{"embedding": [...]}]}`` shapes, plus the older
    ``{"embeddings": [{"embedding": [...]}]}`` variant.
    """
    data = _to_plain(payload)
    if not isinstance(data, dict):
        single = _numeric_list(data)
        return [single] if single is not None else []

    for list_key, vector_key in (
        ("embeddings", "values"),
        ("embeddings", "embedding"),
        ("data", "embedding"),
    ):
        items = data.get(list_key)
        if not isinstance(items, list) or not items:
            continue
        vectors: list[list[float]] = []
        for item in items:
            vector = _numeric_list(item.get(vector_key)) if isinstance(item, dict) else None
            if vector is None:
                break
            vectors.append(vector)
        else:
            return vectors
    return []


def extract_vector(payload: Any) -> list[float] | None:
    """Return the first embedding in a provider response, or None."""
    vectors = extract_vectors(payload)
    if vectors:
        return vectors[0]
    data = _to_plain(payload)
    if isinstance(data, dict):
        embedding = data.get("embedding")
        if isinstance(embedding, dict):
            value = _numeric_list(embedding.get("value")) or _numeric_list(
                embedding.get("values")
            )
            if value is not None:
                return value
    return _find_first_numeric_array(data)


class EmbeddingBackend(Protocol):
    """A single text-to-vector provider. Returning None means "try the next one"."""

    name: str

    def try_embed(self, text: str) -> list[float] | None:
        """Embed one text, or return None on any failure."""

    def try_embed_batch(self, texts: list[str]) -> list[list[float] | None] | None:
        """Embed many texts, or return None when the whole batch failed."""


class _HostedProvider:
    """Shared error handling for hosted embedding APIs."""

    name = "hosted"

    def __init__(self, *, dim: int, batch_size: int) -> None:
        self.dim = dim
        self.batch_size = batch_size

    def _request(self, texts: list[str]) -> Any:
        raise NotImplementedError

    def _accept(self, vector: list[float] | None) -> list[float] | None:
        if vector is None or len(vector) != self.dim:
            return None
        return vector

    def try_embed(self, text: str) -> list[float] | None:
        try:
            vector = self._accept(extract_vector(self._request([text])))
        except Exception as exc:
            logger.warning(
                "Embedding provider failed",
                extra={"provider": self.name, "error": str(exc)},
            )
            return None
        if vector is None:
            logger.warning(
                "Embedding provider returned no usable vector",
                extra={"provider": self.name, "dim": self.dim},
            )
        return vector

    def try_embed_batch(self, texts: list[str]) -> list[list[float] | None] | None:
        results: list[list[float] | None] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                vectors = extract_vectors(self._request(batch))
            except Exception as exc:
                logger.warning(
                    "Embedding provider batch failed",
                    extra={"provider": self.name, "size": len(batch), "error": str(exc)},
                )
                return None
            if len(vectors) != len(batch):
                logger.warning(
                    "Embedding provider returned mismatched batch",
                    extra={"provider": self.name, "expected": len(batch), "got": len(vectors)},
                )
                return None
            results.extend(self._accept(vector) for vector in vectors)
        return results


class GeminiEmbeddingProvider(_HostedProvider):
    """Generate text embeddings via Google GenAI."""

    name = "gemini"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(
            dim=resolve_embedding_dim(dim),
            batch_size=batch_size or _DEFAULT_BATCH_SIZE,
        )
        self.model = model or os.getenv(
            "NEWSRAG_GEMINI_EMBEDDING_MODEL", _DEFAULT_GEMINI_MODEL
        )

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            resolved_timeout = timeout or _provider_timeout()
            self._client = GenAIClient(
                api_key=resolved_key,
                http_options=HttpOptions(timeout=int(resolved_timeout * 1000)),
            )

    def _request(self, texts: list[str]) -> Any:
        return self._client.models.embed_content(
            model=self.model,
            contents=texts,
            config={"output_dimensionality": self.dim},
        )


class OpenAIEmbeddingProvider(_HostedProvider):
    """Generate text embeddings via the OpenAI embeddings endpoint."""

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        client: Any | None = None,
    ) -> None:
        super().__init__(
            dim=resolve_embedding_dim(dim),
            batch_size=batch_size or _DEFAULT_BATCH_SIZE,
        )
        self.model = model or os.getenv(
            "NEWSRAG_OPENAI_EMBEDDING_MODEL", _DEFAULT_OPENAI_MODEL
        )

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("OPENAI_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "OPENAI_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = OpenAI(
                api_key=resolved_key,
                timeout=timeout or _provider_timeout(),
                max_retries=0,
            )

    def _request(self, texts: list[str]) -> Any:
        return self._client.embeddings.create(
            model=self.model,
            input=texts,
            dimensions=self.dim,
        )


def _provider_timeout() -> float:
    return float(os.getenv("NEWSRAG_PROVIDER_TIMEOUT", str(_DEFAULT_TIMEOUT_SECONDS)))


class EmbeddingChain:
    """Try hosted providers in order, then fall back to :func:`local_embed`."""

    def __init__(
        self,
        providers: Sequence[EmbeddingBackend] = (),
        *,
        dim: int | None = None,
    ) -> None:
        self.providers = list(providers)
        self.dim = resolve_embedding_dim(dim)

    @classmethod
    def from_env(cls, *, dim: int | None = None) -> "EmbeddingChain":
        """Build the chain from whichever provider credentials are configured."""
        resolved_dim = resolve_embedding_dim(dim)
        providers: list[EmbeddingBackend] = []
        for factory in (GeminiEmbeddingProvider, OpenAIEmbeddingProvider):
            try:
                providers.append(factory(dim=resolved_dim))
            except ValueError as exc:
                logger.info(
                    "Embedding provider not configured",
                    extra={"provider": factory.name, "reason": str(exc)},
                )
        return cls(providers, dim=resolved_dim)

    def embed(self, text: str | None) -> list[float]:
        """Embed a single text. Never raises."""
        normalized = "" if text is None else str(text)
        for provider in self.providers:
            vector = provider.try_embed(normalized)
            if vector is not None:
                return vector
        return local_embed(normalized, self.dim)

    def embed_batch(self, texts: Sequence[str | None]) -> list[list[float]]:
        """Embed many texts preserving order and length.

        Raises TypeError when *texts* is not a sequence of texts.
        """
        if isinstance(texts, (str, bytes)) or not isinstance(texts, Sequence):
            raise TypeError(
                f"embed_batch expects a sequence of texts, got {type(texts).__name__}"
            )
        normalized = ["" if text is None else str(text) for text in texts]
        if not normalized:
            return []

        for provider in self.providers:
            vectors = provider.try_embed_batch(normalized)
            if vectors is not None and len(vectors) == len(normalized):
                return [
                    vector if vector is not None else local_embed(text, self.dim)
                    for text, vector in zip(normalized, vectors)
                ]
        return [local_embed(text, self.dim) for text in normalized]
