"""
Hybrid lexical + vector ranking over stored entries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from ..embeddings import tokenize
from ..storage import DocumentEntry

VECTOR_WEIGHT = 0.5


@dataclass(frozen=True)
class SearchResult:
    """A ranked hit returned to callers."""

    id: str
    score: float
    text: str
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "score": self.score, "text": self.text, "meta": self.meta}


@dataclass(frozen=True)
class RankedDocument:
    """Scored candidate for a stored entry."""

    entry: DocumentEntry
    lexical_score: int
    vector_bonus: float

    @property
    def combined_score(self) -> float:
        # Lexical counts are integers and dominate; the bonus stays below 0.5.
        return float(self.lexical_score) + self.vector_bonus

    def to_result(self) -> SearchResult:
        return SearchResult(
            id=self.entry.id,
            score=self.combined_score,
            text=self.entry.text,
            meta=self.entry.meta,
        )


def query_terms(query: str) -> list[str]:
    """Distinct query tokens, in first-seen order."""
    return list(dict.fromkeys(tokenize(query)))


def searchable_text(entry: DocumentEntry) -> str:
    title = entry.meta.get("title") if isinstance(entry.meta, dict) else None
    if title:
        return f"{title} {entry.text}".lower()
    return entry.text.lower()


def lexical_score(terms: Sequence[str], entry: DocumentEntry) -> int:
    """One point per distinct term found as a substring of title + text."""
    haystack = searchable_text(entry)
    return sum(1 for term in terms if term in haystack)


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float | None:
    if len(left) != len(right) or not left:
        return None
    dot = sum(a * b for a, b in zip(left, right))
    norm_left = math.sqrt(sum(a * a for a in left))
    norm_right = math.sqrt(sum(b * b for b in right))
    if norm_left == 0.0 or norm_right == 0.0:
        return None
    return max(-1.0, min(1.0, dot / (norm_left * norm_right)))


def vector_bonus(query_vector: Sequence[float] | None, entry: DocumentEntry) -> float:
    if query_vector is None or entry.vector is None:
        return 0.0
    similarity = cosine_similarity(query_vector, entry.vector)
    if similarity is None:
        return 0.0
    return (similarity + 1.0) / 2.0 * VECTOR_WEIGHT


def rank_entries(
    query: str,
    entries: Iterable[DocumentEntry],
    *,
    query_vector: Sequence[float] | None = None,
    limit: int,
) -> list[SearchResult]:
    """Score every entry and return the top *limit* results.

    Ties keep the store's encounter order.
    """
    terms = query_terms(query)
    candidates = [
        RankedDocument(
            entry=entry,
            lexical_score=lexical_score(terms, entry),
            vector_bonus=vector_bonus(query_vector, entry),
        )
        for entry in entries
    ]
    ordered = sorted(candidates, key=lambda doc: -doc.combined_score)
    return [doc.to_result() for doc in ordered[: max(limit, 1)]]


def count_documents_with_terms(query: str, entries: Iterable[DocumentEntry]) -> int:
    """Number of entries containing at least one query token.

    Callers use this to refuse answering when nothing in the corpus
    shares vocabulary with the query.
    """
    terms = query_terms(query)
    if not terms:
        return 0
    return sum(1 for entry in entries if lexical_score(terms, entry) > 0)
