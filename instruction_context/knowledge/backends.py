"""
Similarity backends used by the vector fallback.

Every backend answers ``similarity_search(text, language, k, min_score)``
with a list of :class:`SimilarityHit`.  Failures are raised as
:class:`~instruction_context.errors.RetrievalDegraded`; the vector fallback
is the only caller and turns them into a degraded result.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

import requests

from ..errors import ConfigurationError, RetrievalDegraded
from .embedder import EMBED_MODEL, embed_query, get_openai_client
from .vector_store import SQLiteVectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimilarityHit:
    """A fragment reference (id or content hash) and its similarity score."""

    fragment_ref: str
    score: float


class SimilarityBackend(ABC):

    name = "base"

    @abstractmethod
    def similarity_search(self, text: str, language: str, k: int,
                          min_score: float) -> list[SimilarityHit]:
        """Return up to *k* hits scoring at least *min_score*, best first."""


# ── Disabled ──

class NullSimilarityBackend(SimilarityBackend):
    """Vector search disabled.  Always returns no hits."""

    name = "none"

    def similarity_search(self, text, language, k, min_score):
        return []


# ── Remote HTTP service ──

class HttpSimilarityBackend(SimilarityBackend):
    """Similarity service reached over HTTP.

    Sends ``POST {base_url}/search`` with ``{text, language, k, min_score}``
    and expects ``{"results": [{"fragment_ref": ..., "score": ...}, ...]}``.
    """

    name = "http"

    def __init__(self, base_url: str, timeout: float = 3.0, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests

    def similarity_search(self, text, language, k, min_score):
        url = f"{self.base_url}/search"
        payload = {"text": text, "language": language, "k": k, "min_score": min_score}
        try:
            response = self._http.post(url, json=payload, timeout=(2, self.timeout))
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise RetrievalDegraded(f"similarity service error: {e}") from e
        except (ValueError, json.JSONDecodeError) as e:
            raise RetrievalDegraded(f"similarity service returned invalid JSON: {e}") from e
        return parse_hits(data)


def parse_hits(data) -> list[SimilarityHit]:
    """Validate a ``{"results": [...]}`` response body."""
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        raise RetrievalDegraded("malformed similarity response: missing 'results' list")
    hits: list[SimilarityHit] = []
    for item in data["results"]:
        try:
            ref = item["fragment_ref"]
            score = float(item["score"])
        except (KeyError, TypeError, ValueError) as e:
            raise RetrievalDegraded(f"malformed similarity hit {item!r}") from e
        if not isinstance(ref, str) or not ref:
            raise RetrievalDegraded(f"malformed similarity hit {item!r}")
        hits.append(SimilarityHit(ref, score))
    return hits


# ── Local embeddings ──

class EmbeddingSimilarityBackend(SimilarityBackend):
    """OpenAI query embedding + cosine search in the local SQLite store.

    Parameters
    ----------
    store:
        A populated :class:`~instruction_context.knowledge.vector_store.SQLiteVectorStore`.
    embed_fn:
        ``text -> vector``.  Defaults to :func:`embed_query` with *client*.
    client:
        OpenAI client used when *embed_fn* is not given.
    """

    name = "openai"

    def __init__(self, store, embed_fn: Callable[[str], list] | None = None,
                 client=None, model: str = EMBED_MODEL):
        if embed_fn is None:
            if client is None:
                raise ValueError("EmbeddingSimilarityBackend needs embed_fn or client")
            embed_fn = lambda text: embed_query(client, text, model=model)  # noqa: E731
        self.store = store
        self._embed = embed_fn

    def similarity_search(self, text, language, k, min_score):
        try:
            vector = self._embed(text)
        except Exception as e:
            raise RetrievalDegraded(f"query embedding failed: {e}") from e
        if not vector:
            raise RetrievalDegraded("query embedding came back empty")

        results = self.store.search(
            vector, top_k=k, filters={"language": language}, min_score=min_score,
        )
        return [SimilarityHit(r["point_id"], r["score"]) for r in results]


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------

def create_backend(config) -> SimilarityBackend:
    """Create the similarity backend named by ``config.VECTOR_BACKEND``.

    Raises
    ------
    ConfigurationError
        If the backend name is unknown, or the ``openai`` backend is selected
        but no client can be built.
    """
    if config.VECTOR_BACKEND == "http":
        logger.info("[VECTOR] Using HTTP similarity service at %s", config.VECTOR_URL)
        return HttpSimilarityBackend(config.VECTOR_URL, timeout=config.VECTOR_TIMEOUT)

    if config.VECTOR_BACKEND == "openai":
        try:
            client = get_openai_client(config.OPENAI_API_KEY)
        except (ImportError, EnvironmentError) as e:
            raise ConfigurationError(f"openai vector backend unavailable: {e}") from e
        store = SQLiteVectorStore(config.VECTOR_DB_PATH)
        if store.count() == 0:
            logger.warning(
                "[VECTOR] Vector store %s is empty; run 'instruction-context embed'",
                config.VECTOR_DB_PATH,
            )
        return EmbeddingSimilarityBackend(store, client=client, model=config.EMBEDDING_MODEL)

    if config.VECTOR_BACKEND != "none":
        raise ConfigurationError(f"unknown vector backend {config.VECTOR_BACKEND!r}")
    return NullSimilarityBackend()
