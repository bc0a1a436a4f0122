"""Tests for the embedding provider chain."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import pytest

from newsrag.embeddings import (
    EmbeddingChain,
    GeminiEmbeddingProvider,
    OpenAIEmbeddingProvider,
    extract_vector,
    extract_vectors,
    local_embed,
    tokenize,
)


# ---------------------------------------------------------------------------
# Mock helpers
# ---------------------------------------------------------------------------


@dataclass
class _FakeEmbedding:
    values: list[float]


@dataclass
class _FakeEmbedResult:
    embeddings: list[_FakeEmbedding]


class _FakeGeminiModels:
    """Records calls and returns constant embeddings of the requested size."""

    def __init__(self, *, fail: bool = False, drop_last: bool = False) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail = fail
        self.drop_last = drop_last

    def embed_content(
        self, *, model: str, contents: list[str], config: dict
    ) -> _FakeEmbedResult:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.fail:
            raise ConnectionError("gemini unreachable")
        dim = config["output_dimensionality"]
        embeddings = [_FakeEmbedding(values=[float(i + 1)] * dim) for i in range(len(contents))]
        if self.drop_last:
            embeddings = embeddings[:-1]
        return _FakeEmbedResult(embeddings=embeddings)


class _FakeGeminiClient:
    def __init__(self, **kwargs: Any) -> None:
        self.models = _FakeGeminiModels(**kwargs)


class _FakeOpenAIEmbeddings:
    def __init__(self, dim_override: int | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.dim_override = dim_override

    def create(self, *, model: str, input: list[str], dimensions: int) -> dict[str, Any]:
        self.calls.append({"model": model, "input": input, "dimensions": dimensions})
        size = self.dim_override or dimensions
        return {"data": [{"embedding": [0.5] * size, "index": i} for i in range(len(input))]}


class _FakeOpenAIClient:
    def __init__(self, dim_override: int | None = None) -> None:
        self.embeddings = _FakeOpenAIEmbeddings(dim_override)


# ---------------------------------------------------------------------------
# Local deterministic embedding
# ---------------------------------------------------------------------------


def test_tokenize_lowercases_and_splits_on_non_word_characters() -> None:
    assert tokenize("Parks, are GREAT!  for-communities") == [
        "parks",
        "are",
        "great",
        "for",
        "communities",
    ]
    assert tokenize("") == []
    assert tokenize(None) == []


def test_local_embed_is_deterministic_and_normalised() -> None:
    first = local_embed("City council approves new parks budget", 64)
    second = local_embed("City council approves new parks budget", 64)

    assert first == second
    assert len(first) == 64
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0, rel_tol=1e-9)


def test_local_embed_known_value_is_stable_across_processes() -> None:
    # A single token lands on one index with weight 1.0 after normalisation.
    vector = local_embed("parks", 512)
    assert sorted(vector, reverse=True)[0] == 1.0
    assert sum(1 for value in vector if value != 0.0) == 1


def test_local_embed_empty_text_maps_to_canonical_vector() -> None:
    for text in ("", None, "   !!! "):
        vector = local_embed(text, 8)
        assert vector == [1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]


def test_local_embed_counts_repeated_tokens() -> None:
    once = local_embed("parks", 32)
    twice = local_embed("parks parks", 32)
    # Same single bucket, so normalisation makes them identical.
    assert once == twice


# ---------------------------------------------------------------------------
# Response shape extraction
# ---------------------------------------------------------------------------


def test_extract_vector_supports_known_shapes() -> None:
    assert extract_vector({"embeddings": [{"values": [1, 2]}]}) == [1.0, 2.0]
    assert extract_vector({"embeddings": [{"embedding": [3, 4]}]}) == [3.0, 4.0]
    assert extract_vector({"embedding": {"value": [5, 6]}}) == [5.0, 6.0]
    assert extract_vector({"data": [{"embedding": [7, 8]}]}) == [7.0, 8.0]
    assert extract_vector({"output": [{"nested": {"vec": [9, 10]}}]}) == [9.0, 10.0]


def test_extract_vector_rejects_non_numeric_payloads() -> None:
    assert extract_vector({"data": []}) is None
    assert extract_vector({"error": "quota"}) is None
    assert extract_vector(None) is None
    assert extract_vector({"values": ["a", "b"]}) is None


def test_extract_vectors_reads_dataclass_responses() -> None:
    result = _FakeEmbedResult(embeddings=[_FakeEmbedding([1.0]), _FakeEmbedding([2.0])])
    assert extract_vectors(result) == [[1.0], [2.0]]


# ---------------------------------------------------------------------------
# Hosted providers
# ---------------------------------------------------------------------------


def test_gemini_provider_requests_configured_dimension() -> None:
    client = _FakeGeminiClient()
    provider = GeminiEmbeddingProvider(client=client, dim=4)

    vector = provider.try_embed("hello")

    assert vector == [1.0, 1.0, 1.0, 1.0]
    call = client.models.calls[0]
    assert call["config"]["output_dimensionality"] == 4
    assert call["model"] == "gemini-embedding-001"


def test_gemini_provider_swallows_errors() -> None:
    provider = GeminiEmbeddingProvider(client=_FakeGeminiClient(fail=True), dim=4)

    assert provider.try_embed("hello") is None
    assert provider.try_embed_batch(["a", "b"]) is None


def test_openai_provider_rejects_wrong_dimension() -> None:
    provider = OpenAIEmbeddingProvider(client=_FakeOpenAIClient(dim_override=3), dim=4)

    assert provider.try_embed("hello") is None


def test_hosted_provider_batches_requests() -> None:
    client = _FakeGeminiClient()
    provider = GeminiEmbeddingProvider(client=client, dim=2, batch_size=3)

    vectors = provider.try_embed_batch([f"text_{i}" for i in range(7)])

    assert vectors is not None and len(vectors) == 7
    assert [len(call["contents"]) for call in client.models.calls] == [3, 3, 1]


def test_missing_api_keys_raise() -> None:
    with pytest.raises(ValueError, match="GOOGLE_API_KEY"):
        GeminiEmbeddingProvider(dim=4)
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        OpenAIEmbeddingProvider(dim=4)


def test_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv("NEWSRAG_GEMINI_EMBEDDING_MODEL", "custom-model-001")
    monkeypatch.setenv("NEWSRAG_EMBEDDING_DIM", "16")
    client = _FakeGeminiClient()

    provider = GeminiEmbeddingProvider(client=client)
    provider.try_embed("test")

    assert provider.model == "custom-model-001"
    assert provider.dim == 16
    assert client.models.calls[0]["config"]["output_dimensionality"] == 16


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


def test_chain_from_env_without_credentials_uses_local_fallback() -> None:
    chain = EmbeddingChain.from_env(dim=32)

    assert chain.providers == []
    assert chain.embed("parks") == local_embed("parks", 32)


def test_chain_falls_through_in_priority_order() -> None:
    gemini = GeminiEmbeddingProvider(client=_FakeGeminiClient(fail=True), dim=4)
    openai_client = _FakeOpenAIClient()
    openai = OpenAIEmbeddingProvider(client=openai_client, dim=4)
    chain = EmbeddingChain([gemini, openai], dim=4)

    assert chain.embed("hello") == [0.5, 0.5, 0.5, 0.5]
    assert len(openai_client.embeddings.calls) == 1


def test_chain_uses_first_successful_provider() -> None:
    gemini_client = _FakeGeminiClient()
    openai_client = _FakeOpenAIClient()
    chain = EmbeddingChain(
        [
            GeminiEmbeddingProvider(client=gemini_client, dim=4),
            OpenAIEmbeddingProvider(client=openai_client, dim=4),
        ],
        dim=4,
    )

    assert chain.embed("hello") == [1.0, 1.0, 1.0, 1.0]
    assert openai_client.embeddings.calls == []


def test_chain_falls_back_to_local_when_every_provider_fails() -> None:
    chain = EmbeddingChain(
        [
            GeminiEmbeddingProvider(client=_FakeGeminiClient(fail=True), dim=8),
            OpenAIEmbeddingProvider(client=_FakeOpenAIClient(dim_override=3), dim=8),
        ],
        dim=8,
    )

    assert chain.embed("hello world") == local_embed("hello world", 8)
    assert chain.embed(None) == local_embed("", 8)


def test_embed_batch_preserves_order_and_length_on_mismatched_count() -> None:
    chain = EmbeddingChain(
        [GeminiEmbeddingProvider(client=_FakeGeminiClient(drop_last=True), dim=8)],
        dim=8,
    )
    texts = ["alpha", "beta", "gamma"]

    vectors = chain.embed_batch(texts)

    assert vectors == [local_embed(text, 8) for text in texts]


def test_embed_batch_uses_remote_vectors_when_counts_match() -> None:
    chain = EmbeddingChain(
        [GeminiEmbeddingProvider(client=_FakeGeminiClient(), dim=2)],
        dim=2,
    )

    assert chain.embed_batch(["a", "b"]) == [[1.0, 1.0], [2.0, 2.0]]
    assert chain.embed_batch([]) == []


def test_embed_batch_rejects_non_sequence_input() -> None:
    chain = EmbeddingChain(dim=8)

    with pytest.raises(TypeError):
        chain.embed_batch("not a list")
    with pytest.raises(TypeError):
        chain.embed_batch(42)  # type: ignore[arg-type]
