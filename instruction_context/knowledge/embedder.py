"""
Fragment embedder for the ``openai`` similarity backend.

Formats each knowledge fragment into a short text chunk, calls the OpenAI
Embeddings API (text-embedding-3-small) in batches and upserts the vectors
into a :class:`~instruction_context.knowledge.vector_store.SQLiteVectorStore`.

Points are keyed by the fragment's content hash, so re-embedding unchanged
content overwrites instead of duplicating.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Iterable, Optional

from tqdm import tqdm

from ..models import KnowledgeFragment

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMBED_MODEL = "text-embedding-3-small"
BATCH_SIZE = 100
MAX_RETRIES = 3


# ---------------------------------------------------------------------------
# Text formatting
# ---------------------------------------------------------------------------

def fragment_text(fragment: KnowledgeFragment) -> str:
    """Format a fragment into embeddable text."""
    topics = ", ".join(fragment.topic_tags) if fragment.topic_tags else "general"
    return (
        f"Topics: {topics}\n"
        f"Language: {fragment.language}\n"
        f"{fragment.body_text.strip()}"
    )


def fragment_payload(fragment: KnowledgeFragment) -> dict:
    return {
        "fragment_id": fragment.id,
        "content_hash": fragment.content_hash,
        "language": fragment.language,
        "topic": fragment.primary_topic,
        "priority_hint": fragment.priority_hint,
    }


# ---------------------------------------------------------------------------
# OpenAI embedding helpers
# ---------------------------------------------------------------------------

def get_openai_client(api_key: Optional[str] = None):
    """Return an ``openai.OpenAI`` client.

    Raises
    ------
    ImportError
        If the ``openai`` package is not installed.
    EnvironmentError
        If no API key is configured.
    """
    try:
        import openai  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "openai package is required for embedding. "
            "Install it with: pip install 'instruction_context[semantic]'"
        ) from exc
    api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
    if not api_key:
        raise EnvironmentError("OPENAI_API_KEY environment variable is not set.")
    return openai.OpenAI(api_key=api_key)


def embed_batch(
    client,
    texts: list[str],
    model: str = EMBED_MODEL,
    max_retries: int = MAX_RETRIES,
    backoff: float = 2.0,
) -> list[list[float]]:
    """
    Embed a batch of texts via the OpenAI Embeddings API.

    Retries up to *max_retries* times with exponential back-off on failure.

    Parameters
    ----------
    client:
        An ``openai.OpenAI`` client instance.
    texts:
        List of text strings to embed.
    model:
        Embedding model name.
    max_retries:
        Total attempts before giving up.
    backoff:
        Base of the exponential wait, in seconds.  ``0`` disables waiting.

    Returns
    -------
    list[list[float]]
        Embedding vectors in the same order as *texts*.

    Raises
    ------
    RuntimeError
        If all retries are exhausted.
    """
    for attempt in range(1, max_retries + 1):
        try:
            response = client.embeddings.create(model=model, input=texts)
            return [item.embedding for item in response.data]
        except Exception as exc:
            if attempt < max_retries:
                wait = backoff ** attempt if backoff else 0
                logger.warning(
                    "[EMBED] Embedding API error (attempt %d/%d): %s, retrying in %ss",
                    attempt, max_retries, exc, wait,
                )
                if wait:
                    time.sleep(wait)
            else:
                raise RuntimeError(
                    f"Embedding API failed after {max_retries} attempts: {exc}"
                ) from exc
    return []


def embed_query(client, text: str, model: str = EMBED_MODEL) -> list[float]:
    """Embed a single query string.  One attempt only; callers time-box it."""
    response = client.embeddings.create(model=model, input=[text])
    return response.data[0].embedding


# ---------------------------------------------------------------------------
# Main embedding orchestrator
# ---------------------------------------------------------------------------

def embed_fragments(
    fragments: Iterable[KnowledgeFragment],
    vector_store,
    client=None,
    model: str = EMBED_MODEL,
    batch_size: int = BATCH_SIZE,
    show_progress: bool = True,
    backoff: float = 2.0,
) -> dict:
    """
    Embed *fragments* and upsert them into *vector_store*.

    Parameters
    ----------
    fragments:
        Fragments to embed, typically ``index.fragments``.
    vector_store:
        A :class:`SQLiteVectorStore` (or anything with ``upsert``).
    client:
        OpenAI client; built from the environment when omitted.
    model:
        Embedding model name.
    batch_size:
        Number of fragments per API call.
    show_progress:
        Show a tqdm progress bar.
    backoff:
        Passed to :func:`embed_batch`.

    Returns
    -------
    dict
        Keys: total, embedded, errors.
    """
    if client is None:
        client = get_openai_client()

    # One point per distinct content hash
    unique: dict[str, KnowledgeFragment] = {}
    for fragment in fragments:
        unique.setdefault(fragment.content_hash, fragment)
    chunks = list(unique.values())

    embedded_count = 0
    error_count = 0

    iterator = tqdm(
        range(0, len(chunks), batch_size),
        desc="Embedding fragments",
        unit="batch",
        total=(len(chunks) + batch_size - 1) // batch_size,
        disable=not show_progress,
    )

    for batch_start in iterator:
        batch = chunks[batch_start: batch_start + batch_size]
        texts = [fragment_text(f) for f in batch]

        try:
            vectors = embed_batch(client, texts, model=model, backoff=backoff)
        except RuntimeError as exc:
            logger.warning("[EMBED] Skipping batch starting at %d: %s", batch_start, exc)
            error_count += len(batch)
            continue

        points = [
            (fragment.content_hash, vector, fragment_payload(fragment))
            for fragment, vector in zip(batch, vectors)
        ]

        try:
            vector_store.upsert(points)
            embedded_count += len(points)
            iterator.set_postfix({"embedded": embedded_count})
        except Exception as exc:
            logger.warning("[EMBED] Vector store upsert failed for batch: %s", exc)
            error_count += len(batch)

    logger.info(
        "[EMBED] Embedded %d/%d fragments (%d errors)",
        embedded_count, len(chunks), error_count,
    )
    return {
        "total": len(chunks),
        "embedded": embedded_count,
        "errors": error_count,
    }
