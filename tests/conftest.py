from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

import newsrag.server as server_module


@pytest.fixture(autouse=True)
def offline_env(tmp_path: Path, monkeypatch):
    """Keep every test off the network and away from the user's store."""
    for name in (
        "GOOGLE_API_KEY",
        "OPENAI_API_KEY",
        "QDRANT_URL",
        "QDRANT_API_KEY",
        "NEWSRAG_EMBEDDING_DIM",
        "NEWSRAG_GEMINI_EMBEDDING_MODEL",
        "NEWSRAG_OPENAI_EMBEDDING_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NEWSRAG_STORE_PATH", str(tmp_path / "default_store.json"))
    server_module.reset_engine()
    yield
    server_module.reset_engine()


# ---------------------------------------------------------------------------
# Fake Qdrant client
# ---------------------------------------------------------------------------


@dataclass
class _FakeCollection:
    name: str


@dataclass
class _FakeCollectionsResponse:
    collections: list[_FakeCollection]


@dataclass
class _FakeScoredPoint:
    id: str
    score: float
    payload: dict[str, Any] | None


@dataclass
class _FakeQueryResponse:
    points: list[_FakeScoredPoint]


@dataclass
class FakeQdrantClient:
    """Records calls; each operation can be made to raise via ``fail_on``."""

    collections: set[str] = field(default_factory=set)
    points: dict[str, Any] = field(default_factory=dict)
    fail_on: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise ConnectionError(f"{name} refused")

    def get_collections(self) -> _FakeCollectionsResponse:
        self._record("get_collections")
        return _FakeCollectionsResponse(
            collections=[_FakeCollection(name=name) for name in sorted(self.collections)]
        )

    def create_collection(self, *, collection_name: str, vectors_config: Any) -> bool:
        self._record("create_collection")
        self.collections.add(collection_name)
        return True

    def delete_collection(self, *, collection_name: str) -> bool:
        self._record("delete_collection")
        self.collections.discard(collection_name)
        self.points.clear()
        return True

    def upsert(self, *, collection_name: str, points: list[Any]) -> None:
        self._record("upsert")
        for point in points:
            self.points[point.id] = point

    def query_points(
        self, *, collection_name: str, query: list[float], limit: int, with_payload: bool
    ) -> _FakeQueryResponse:
        self._record("query_points")
        scored = [
            _FakeScoredPoint(id=point.id, score=0.9 - 0.1 * index, payload=point.payload)
            for index, point in enumerate(self.points.values())
        ]
        return _FakeQueryResponse(points=scored[:limit])


@pytest.fixture()
def fake_qdrant() -> FakeQdrantClient:
    return FakeQdrantClient()
