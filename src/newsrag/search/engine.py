"""
Retrieval engine tying the embedding chain, local store and remote index together.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from ..embeddings import EmbeddingChain
from ..storage import (
    DocumentEntry,
    DocumentStore,
    LocalDocumentStore,
    QdrantIndex,
    RemoteIndexError,
)
from .ranker import SearchResult, count_documents_with_terms, rank_entries

logger = logging.getLogger(__name__)


class MalformedInputError(ValueError):
    """Raised when a caller passes a query or document batch the engine cannot use."""


class RetrievalEngine:
    """Hybrid document store with a remote-first, local-fallback search path."""

    def __init__(
        self,
        *,
        store: DocumentStore | None = None,
        embeddings: EmbeddingChain | None = None,
        remote: QdrantIndex | None = None,
    ) -> None:
        self.embeddings = embeddings or EmbeddingChain.from_env()
        self.store = store if store is not None else LocalDocumentStore(dim=self.embeddings.dim)
        self.remote = remote if remote is not None else QdrantIndex(dim=self.embeddings.dim)
        if self.store.dim != self.embeddings.dim:
            raise ValueError(
                f"Store dimension {self.store.dim} does not match "
                f"embedding dimension {self.embeddings.dim}."
            )

    @property
    def using_remote(self) -> bool:
        return self.remote.active

    def init(self) -> bool:
        """Connect the remote index. Returns True when it is in use."""
        active = self.remote.init()
        logger.info(
            "Retrieval engine initialised",
            extra={
                "using_remote": active,
                "local_documents": len(self.store),
                "providers": [provider.name for provider in self.embeddings.providers],
            },
        )
        return active

    def upsert_documents(self, docs: Any) -> list[dict[str, str]]:
        """Embed and store ``{id?, text, meta?}`` mappings. Returns their ids."""
        entries = self._build_entries(docs)
        if not entries:
            return []

        if self.remote.active:
            try:
                self.remote.upsert(entries)
            except RemoteIndexError as exc:
                logger.warning(
                    "Remote upsert failed; retrying batch locally",
                    extra={"count": len(entries), "error": str(exc)},
                )
        # Always mirrored so a restart without the remote index keeps the data.
        self.store.upsert(entries)
        return [{"id": entry.id} for entry in entries]

    def search(self, query_text: Any, k: int = 5) -> list[SearchResult]:
        if not isinstance(query_text, str) or not query_text.strip():
            raise MalformedInputError("Missing query text: expected a non-empty string.")
        limit = max(int(k), 1)
        query_vector = self.embeddings.embed(query_text)

        if self.remote.active:
            try:
                rows = self.remote.search(query_vector, limit)
            except RemoteIndexError as exc:
                logger.warning(
                    "Remote search failed; falling back to local store",
                    extra={"error": str(exc)},
                )
            else:
                return [SearchResult(**row) for row in rows[:limit]]

        return rank_entries(
            query_text,
            self.store.get_all(),
            query_vector=query_vector,
            limit=limit,
        )

    def documents_matching(self, query_text: str) -> int:
        """Count stored documents sharing at least one token with the query."""
        return count_documents_with_terms(query_text, self.store.get_all())

    def get_all(self) -> tuple[DocumentEntry, ...]:
        return self.store.get_all()

    def clear(self) -> None:
        self.remote.clear()
        self.store.clear()

    def _build_entries(self, docs: Any) -> list[DocumentEntry]:
        if not isinstance(docs, (list, tuple)):
            raise MalformedInputError(
                f"Documents must be a list of mappings, got {type(docs).__name__}."
            )
        prepared: list[tuple[str, str, dict[str, Any]]] = []
        for position, doc in enumerate(docs):
            if not isinstance(doc, Mapping):
                raise MalformedInputError(
                    f"Document at position {position} must be a mapping, "
                    f"got {type(doc).__name__}."
                )
            raw_id = doc.get("id")
            doc_id = str(raw_id) if raw_id not in (None, "") else str(uuid.uuid4())
            text = doc.get("text")
            meta = doc.get("meta")
            prepared.append(
                (
                    doc_id,
                    "" if text is None else str(text),
                    dict(meta) if isinstance(meta, Mapping) else {},
                )
            )

        vectors = self.embeddings.embed_batch([text for _, text, _ in prepared])
        return [
            DocumentEntry(id=doc_id, text=text, vector=vector, meta=meta)
            for (doc_id, text, meta), vector in zip(prepared, vectors)
        ]
