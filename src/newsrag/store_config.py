"""
Configuration helpers for the document store and its collaborators.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path


DEFAULT_STORE_PATH = "~/.newsrag/vector_store.json"
ENV_STORE_PATH = "NEWSRAG_STORE_PATH"

DEFAULT_EMBEDDING_DIM = 512
ENV_EMBEDDING_DIM = "NEWSRAG_EMBEDDING_DIM"

ENV_LOG_LEVEL = "NEWSRAG_LOG_LEVEL"


def resolve_store_path(override_path: str | None = None) -> str:
    """
    Resolve the snapshot path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) NEWSRAG_STORE_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_STORE_PATH) or DEFAULT_STORE_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def resolve_embedding_dim(override_dim: int | None = None) -> int:
    """Return the vector dimension shared by the chain, store and remote index."""
    dim = override_dim or int(os.getenv(ENV_EMBEDDING_DIM, str(DEFAULT_EMBEDDING_DIM)))
    if dim <= 0:
        raise ValueError(f"Embedding dimension must be positive, got {dim}")
    return dim


def setup_logging(level: str | None = None) -> logging.Logger:
    """
    Configure base logging for the CLI and server entry points.
    """
    logging.basicConfig(
        level=(level or os.getenv(ENV_LOG_LEVEL, "INFO")).upper(),
        format="[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
    )
    return logging.getLogger("newsrag")
