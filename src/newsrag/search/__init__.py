"""Search helpers for the hybrid document store."""

from .engine import MalformedInputError, RetrievalEngine
from .ranker import (
    RankedDocument,
    SearchResult,
    count_documents_with_terms,
    cosine_similarity,
    lexical_score,
    rank_entries,
)

__all__ = [
    "MalformedInputError",
    "RetrievalEngine",
    "RankedDocument",
    "SearchResult",
    "count_documents_with_terms",
    "cosine_similarity",
    "lexical_score",
    "rank_entries",
]
