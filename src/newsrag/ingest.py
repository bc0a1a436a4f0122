"""
Batch ingestion of news articles into the retrieval engine.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .search import RetrievalEngine

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 32


@dataclass(frozen=True)
class IngestResult:
    """Summary output for an ingestion run."""

    articles: int
    upserted: int
    failed_batches: int


def load_articles(path: str | Path) -> list[dict[str, Any]]:
    """Read an article list from a JSON array or an ``{"articles": [...]}`` object."""
    parsed = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("articles"), list):
        return parsed["articles"]
    raise ValueError(f"Article file format not recognized, expecting an array: {path}")


def _first(article: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = article.get(key)
        if value:
            return value
    return None


def document_from_article(article: dict[str, Any]) -> dict[str, Any]:
    """Map a raw article onto the ``{id, text, meta}`` shape the engine stores."""
    title = _first(article, "title", "headline") or ""
    content = _first(article, "text", "content", "body", "summary") or ""
    return {
        "id": str(article.get("id") or uuid.uuid4()),
        "text": f"{title}\n\n{content}".strip(),
        "meta": {
            "title": title,
            "url": _first(article, "url", "source_url"),
            "publishedAt": _first(article, "publishedAt", "date"),
            "original": article,
        },
    }


def ingest_articles(
    engine: RetrievalEngine,
    articles: list[dict[str, Any]],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> IngestResult:
    """Upsert articles in batches; a failed batch is logged and skipped."""
    docs = [document_from_article(article) for article in articles if isinstance(article, dict)]
    step = max(batch_size, 1)
    upserted = 0
    failed_batches = 0
    for start in range(0, len(docs), step):
        batch = docs[start : start + step]
        try:
            upserted += len(engine.upsert_documents(batch))
        except Exception as exc:
            failed_batches += 1
            logger.error(
                "Upsert batch failed",
                extra={"start": start, "size": len(batch), "error": str(exc)},
            )
            continue
        logger.info(
            "Upserted batch",
            extra={"start": start, "size": len(batch)},
        )
    return IngestResult(articles=len(docs), upserted=upserted, failed_batches=failed_batches)
