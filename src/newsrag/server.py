"""
FastAPI server exposing hybrid document search.

Provides a health check, a search endpoint, and document upsert/clear
endpoints backed by a single process-wide retrieval engine.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .search import RetrievalEngine

logger = logging.getLogger(__name__)

app = FastAPI(title="newsrag", description="Hybrid lexical + vector news retrieval")

MAX_RESULTS = 20
SNIPPET_CHARS = 400

_engine: RetrievalEngine | None = None
_engine_lock = threading.Lock()


def get_engine() -> RetrievalEngine:
    """Return the process-wide engine, building and initialising it once."""
    global _engine
    with _engine_lock:
        if _engine is None:
            engine = RetrievalEngine()
            engine.init()
            _engine = engine
        return _engine


def reset_engine(engine: RetrievalEngine | None = None) -> None:
    """Replace (or drop) the process-wide engine."""
    global _engine
    with _engine_lock:
        _engine = engine


class SearchRequest(BaseModel):
    """Request model for search queries."""

    query: str
    k: int = 5
    require_match: bool = False


class DocumentIn(BaseModel):
    id: str | None = None
    text: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)


class UpsertRequest(BaseModel):
    """Request model for document upserts."""

    documents: list[DocumentIn]


@app.get("/healthz")
async def healthz():
    engine = get_engine()
    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(),
        "using_remote": engine.using_remote,
    }


@app.post("/api/search")
async def search_documents(request: SearchRequest):
    """Search stored documents and return ranked hits."""
    try:
        if not request.query.strip():
            return JSONResponse(
                {"error": "Missing 'query' string in request body"}, status_code=400
            )
        engine = get_engine()
        limit = max(1, min(MAX_RESULTS, request.k))

        if request.require_match and len(engine.get_all()) > 0:
            matching = await asyncio.to_thread(engine.documents_matching, request.query)
            if matching == 0:
                return []

        results = await asyncio.to_thread(engine.search, request.query, limit)
        return [
            {
                "id": result.id,
                "score": result.score,
                "title": result.meta.get("title"),
                "url": result.meta.get("url"),
                "snippet": result.text[:SNIPPET_CHARS],
            }
            for result in results
        ]
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except Exception as exc:
        logger.exception("Search request failed")
        return JSONResponse({"error": str(exc)}, status_code=500)


@app.post("/api/documents")
async def upsert_documents(request: UpsertRequest):
    """Embed and store a batch of documents."""
    try:
        engine = get_engine()
        docs = [document.model_dump() for document in request.documents]
        upserted = await asyncio.to_thread(engine.upsert_documents, docs)
        return {"upserted": upserted}
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except Exception as exc:
        logger.exception("Upsert request failed")
        return JSONResponse({"error": str(exc)}, status_code=500)


@app.delete("/api/documents")
async def clear_documents():
    """Remove every stored document."""
    try:
        engine = get_engine()
        await asyncio.to_thread(engine.clear)
        return {"cleared": True}
    except Exception as exc:
        logger.exception("Clear request failed")
        return JSONResponse({"error": str(exc)}, status_code=500)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
