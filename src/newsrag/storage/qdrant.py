"""
Optional Qdrant mirror for the document store.

The adapter is an explicit two-state session. Any failure moves it from
ACTIVE to DISABLED for the rest of the process; callers then fall back to
the local store.
"""

from __future__ import annotations

import enum
import logging
import os
import threading
import uuid
from typing import Any, Iterable

from qdrant_client import QdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams

from ..store_config import resolve_embedding_dim
from .base import DocumentEntry

logger = logging.getLogger(__name__)


_DEFAULT_COLLECTION = "news_articles"
_DEFAULT_TIMEOUT_SECONDS = 5


class RemoteIndexError(RuntimeError):
    """Raised when a remote index call fails; the adapter is disabled first."""


class RemoteState(str, enum.Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


def point_id_for(doc_id: str) -> str:
    """Qdrant accepts only unsigned ints or UUIDs as point ids."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, doc_id))


class QdrantIndex:
    """Remote similarity-search mirror backed by a Qdrant collection."""

    def __init__(
        self,
        *,
        url: str | None = None,
        api_key: str | None = None,
        collection_name: str | None = None,
        dim: int | None = None,
        timeout: float | None = None,
        client: Any | None = None,
    ) -> None:
        self.dim = resolve_embedding_dim(dim)
        self.collection_name = collection_name or os.getenv(
            "NEWSRAG_QDRANT_COLLECTION", _DEFAULT_COLLECTION
        )
        self._lock = threading.Lock()
        self.disabled_reason: str | None = None

        if client is not None:
            self._client = client
            self._state = RemoteState.ACTIVE
            return

        resolved_url = url or os.getenv("QDRANT_URL")
        if not resolved_url:
            self._client = None
            self._state = RemoteState.DISABLED
            self.disabled_reason = "QDRANT_URL not configured"
            return

        self._client = None
        self._state = RemoteState.ACTIVE
        try:
            resolved_timeout = timeout or float(
                os.getenv("NEWSRAG_QDRANT_TIMEOUT", str(_DEFAULT_TIMEOUT_SECONDS))
            )
            self._client = QdrantClient(
                url=resolved_url,
                api_key=api_key or os.getenv("QDRANT_API_KEY"),
                timeout=resolved_timeout,
            )
        except Exception as exc:
            self.disable(f"client setup failed: {exc}")

    @property
    def state(self) -> RemoteState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is RemoteState.ACTIVE

    def disable(self, reason: str) -> None:
        """One-way transition to DISABLED. Repeated calls are no-ops."""
        with self._lock:
            if self._state is RemoteState.DISABLED:
                return
            self._state = RemoteState.DISABLED
            self.disabled_reason = reason
        logger.warning(
            "Remote index disabled; using local store",
            extra={"collection": self.collection_name, "reason": reason},
        )

    def init(self) -> bool:
        """Verify the collection exists, creating it if needed."""
        if not self.active:
            return False
        try:
            response = self._client.get_collections()
            names = {collection.name for collection in response.collections}
            if self.collection_name not in names:
                self._client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=self.dim, distance=Distance.COSINE),
                )
                logger.info(
                    "Created remote collection",
                    extra={"collection": self.collection_name, "dim": self.dim},
                )
        except Exception as exc:
            self.disable(f"init failed: {exc}")
            return False
        return True

    def upsert(self, entries: Iterable[DocumentEntry]) -> int:
        """Write entries that carry a vector. Returns the number of points sent."""
        self._ensure_active()
        points = [
            PointStruct(
                id=point_id_for(entry.id),
                vector=entry.vector,
                payload={"doc_id": entry.id, "text": entry.text, "meta": entry.meta},
            )
            for entry in entries
            if entry.vector is not None
        ]
        if not points:
            return 0
        try:
            self._client.upsert(collection_name=self.collection_name, points=points)
        except Exception as exc:
            self.disable(f"upsert failed: {exc}")
            raise RemoteIndexError(str(exc)) from exc
        return len(points)

    def search(self, vector: list[float], k: int) -> list[dict[str, Any]]:
        """Return ``{id, score, text, meta}`` rows ranked by the remote service."""
        self._ensure_active()
        try:
            response = self._client.query_points(
                collection_name=self.collection_name,
                query=vector,
                limit=max(k, 1),
                with_payload=True,
            )
        except Exception as exc:
            self.disable(f"search failed: {exc}")
            raise RemoteIndexError(str(exc)) from exc

        rows: list[dict[str, Any]] = []
        for point in response.points:
            payload = point.payload or {}
            meta = payload.get("meta")
            rows.append(
                {
                    "id": str(payload.get("doc_id", point.id)),
                    "score": max(float(point.score), 0.0),
                    "text": str(payload.get("text") or ""),
                    "meta": meta if isinstance(meta, dict) else {},
                }
            )
        return rows

    def clear(self) -> None:
        if not self.active:
            return
        try:
            self._client.delete_collection(collection_name=self.collection_name)
            self._client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(size=self.dim, distance=Distance.COSINE),
            )
        except Exception as exc:
            self.disable(f"clear failed: {exc}")

    def _ensure_active(self) -> None:
        if not self.active:
            raise RemoteIndexError(
                f"Remote index is disabled: {self.disabled_reason or 'unknown reason'}"
            )
