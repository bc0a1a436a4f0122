"""Storage backends for the newsrag document store."""

from .base import DocumentEntry, DocumentStore
from .local import LocalDocumentStore
from .qdrant import QdrantIndex, RemoteIndexError, RemoteState

__all__ = [
    "DocumentEntry",
    "DocumentStore",
    "LocalDocumentStore",
    "QdrantIndex",
    "RemoteIndexError",
    "RemoteState",
]
