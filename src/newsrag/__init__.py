"""
newsrag - hybrid vector store and retrieval engine for news articles.

This package stores documents in a local, disk-persisted store mirrored to
an optional Qdrant collection, embeds text through a provider chain that
always falls back to a deterministic local embedding, and ranks results by
blending lexical overlap with vector similarity.

Example usage:
    >>> from newsrag import RetrievalEngine
    >>> engine = RetrievalEngine()
    >>> engine.init()
    >>> engine.upsert_documents([{"id": "a", "text": "parks are great", "meta": {"title": "Parks"}}])
    >>> engine.search("parks", k=3)
"""

from .embeddings import EmbeddingChain, local_embed, tokenize
from .search import MalformedInputError, RetrievalEngine, SearchResult
from .storage import DocumentEntry, LocalDocumentStore, QdrantIndex

__all__ = [
    # Embeddings
    "EmbeddingChain",
    "local_embed",
    "tokenize",
    # Search
    "MalformedInputError",
    "RetrievalEngine",
    "SearchResult",
    # Storage
    "DocumentEntry",
    "LocalDocumentStore",
    "QdrantIndex",
]
