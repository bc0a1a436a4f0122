"""
Process-local document store persisted as a JSON snapshot.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Iterable

from ..store_config import resolve_embedding_dim, resolve_store_path
from .base import DocumentEntry

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, text: str, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _encode_record(entry: DocumentEntry) -> str:
    """Serialise one entry; metadata JSON cannot represent is stringified."""
    record = entry.to_record()
    try:
        return json.dumps(record, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as exc:
        logger.warning(
            "Stringifying metadata that JSON cannot encode",
            extra={"doc_id": entry.id, "error": str(exc)},
        )
        record["meta"] = {str(key): str(value) for key, value in entry.meta.items()}
        return json.dumps(record, ensure_ascii=False)


class LocalDocumentStore:
    """In-memory entries with flush-on-write persistence.

    Writers are serialised by a lock. Every mutation swaps in a new tuple,
    so readers can iterate ``get_all()`` without locking.
    """

    def __init__(self, path: str | None = None, *, dim: int | None = None) -> None:
        self.path = Path(resolve_store_path(path))
        self.dim = resolve_embedding_dim(dim)
        self._lock = threading.Lock()
        self._entries: tuple[DocumentEntry, ...] = self._load()

    def __len__(self) -> int:
        return len(self._entries)

    def get_all(self) -> tuple[DocumentEntry, ...]:
        return self._entries

    def get(self, doc_id: str) -> DocumentEntry | None:
        for entry in self._entries:
            if entry.id == doc_id:
                return entry
        return None

    def upsert(self, entries: Iterable[DocumentEntry]) -> None:
        incoming = list(entries)
        if not incoming:
            return

        with self._lock:
            updated = list(self._entries)
            positions = {entry.id: index for index, entry in enumerate(updated)}
            for entry in incoming:
                if entry.vector is not None and len(entry.vector) != self.dim:
                    logger.warning(
                        "Dropping vector with unexpected dimension",
                        extra={"doc_id": entry.id, "dim": len(entry.vector), "expected": self.dim},
                    )
                    entry = DocumentEntry(id=entry.id, text=entry.text, vector=None, meta=entry.meta)
                index = positions.get(entry.id)
                if index is None:
                    positions[entry.id] = len(updated)
                    updated.append(entry)
                else:
                    updated[index] = entry
            self._entries = tuple(updated)
            self._flush()

        logger.debug(
            "Upserted documents into local store",
            extra={"count": len(incoming), "total": len(self._entries)},
        )

    def clear(self) -> None:
        with self._lock:
            self._entries = ()
            try:
                self.path.unlink(missing_ok=True)
            except OSError as exc:
                logger.error(
                    "Failed to delete persisted store",
                    extra={"path": str(self.path), "error": str(exc)},
                )
        logger.info("Local store cleared", extra={"path": str(self.path)})

    def _flush(self) -> None:
        payload = "[" + ", ".join(_encode_record(entry) for entry in self._entries) + "]"
        try:
            atomic_write_text(self.path, payload)
        except OSError as exc:
            # Memory stays authoritative; the next successful flush repairs the file.
            logger.error(
                "Failed to persist local store",
                extra={"path": str(self.path), "error": str(exc)},
            )

    def _load(self) -> tuple[DocumentEntry, ...]:
        if not self.path.exists():
            return ()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error(
                "Persisted store unreadable; starting empty",
                extra={"path": str(self.path), "error": str(exc)},
            )
            return ()

        if not isinstance(raw, list):
            logger.error(
                "Persisted store is not a JSON array; starting empty",
                extra={"path": str(self.path)},
            )
            return ()

        loaded: dict[str, DocumentEntry] = {}
        skipped = 0
        for record in raw:
            if not isinstance(record, dict):
                skipped += 1
                continue
            try:
                entry = DocumentEntry.from_record(record, dim=self.dim)
            except (TypeError, ValueError):
                skipped += 1
                continue
            loaded[entry.id] = entry

        if skipped:
            logger.warning(
                "Skipped malformed persisted records",
                extra={"path": str(self.path), "skipped": skipped},
            )
        logger.info(
            "Loaded persisted store",
            extra={"path": str(self.path), "count": len(loaded)},
        )
        return tuple(loaded.values())
