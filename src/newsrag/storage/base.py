"""
Storage interfaces and data models for the document store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol


@dataclass(frozen=True)
class DocumentEntry:
    """A stored document: indexed text, optional embedding and opaque metadata."""

    id: str
    text: str
    vector: list[float] | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vector": self.vector,
            "text": self.text,
            "meta": self.meta,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any], *, dim: int | None = None) -> "DocumentEntry":
        """Build an entry from a persisted record.

        Raises ValueError when the record has no usable id.
        """
        raw_id = record.get("id")
        if raw_id is None or str(raw_id) == "":
            raise ValueError("Persisted record is missing an id.")

        vector = record.get("vector")
        if not isinstance(vector, list) or not vector:
            vector = None
        elif dim is not None and len(vector) != dim:
            vector = None
        else:
            vector = [float(value) for value in vector]

        meta = record.get("meta")
        return cls(
            id=str(raw_id),
            text=str(record.get("text") or ""),
            vector=vector,
            meta=meta if isinstance(meta, dict) else {},
        )


class DocumentStore(Protocol):
    """Protocol for the process-local document store."""

    dim: int

    def __len__(self) -> int:
        """Number of stored entries."""

    def upsert(self, entries: Iterable[DocumentEntry]) -> None:
        """Insert or replace entries by id."""

    def get_all(self) -> tuple[DocumentEntry, ...]:
        """Return a consistent snapshot of every stored entry."""

    def clear(self) -> None:
        """Remove every entry, including the persisted snapshot."""
