"""
SQLite-backed local vector store for knowledge fragments.

Stores embedding vectors in SQLite and computes cosine similarity with
numpy.  Zero-config: no external vector database is required for the
``openai`` similarity backend.

Storage: ``.instruction_context/vectors.db`` (see ``vector_db_path``).
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VECTOR_SIZE = 1536  # text-embedding-3-small dimension

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS vectors (
    point_id   TEXT PRIMARY KEY,
    vector     BLOB NOT NULL,
    payload    TEXT NOT NULL DEFAULT '{}'
);
"""

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _vec_to_bytes(vec) -> bytes:
    """Serialise a float sequence to compact float32 bytes."""
    return np.asarray(vec, dtype=np.float32).tobytes()


def _bytes_to_vec(buf: bytes) -> np.ndarray:
    return np.frombuffer(buf, dtype=np.float32).copy()


def _cosine_similarity_batch(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Compute cosine similarity between *query* (1-D) and each row of *matrix*."""
    query_norm = np.linalg.norm(query)
    if query_norm == 0:
        return np.zeros(matrix.shape[0])
    row_norms = np.linalg.norm(matrix, axis=1)
    row_norms[row_norms == 0] = 1.0
    return (matrix @ query) / (row_norms * query_norm)


# ---------------------------------------------------------------------------
# SQLiteVectorStore
# ---------------------------------------------------------------------------

class SQLiteVectorStore:
    """Local vector store backed by SQLite + numpy cosine similarity.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  ``":memory:"`` keeps everything
        in memory (used by tests).
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        self._init_db()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        conn = self._get_conn()
        conn.executescript(_CREATE_TABLE)
        conn.commit()

    def _get_conn(self) -> sqlite3.Connection:
        """Lazy connection shared across threads; guarded by ``_lock``."""
        if self._conn is None:
            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            if self._db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.execute("PRAGMA synchronous=NORMAL")
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass
            self._conn = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def upsert(self, points: list[tuple[str, list[float], dict]]) -> None:
        """Upsert vector points.

        Parameters
        ----------
        points:
            List of ``(point_id, vector, payload)`` tuples.
        """
        if not points:
            return
        with self._lock:
            conn = self._get_conn()
            for point_id, vector, payload in points:
                conn.execute(
                    "INSERT OR REPLACE INTO vectors (point_id, vector, payload) "
                    "VALUES (?, ?, ?)",
                    (point_id, _vec_to_bytes(vector), json.dumps(payload, default=str)),
                )
            conn.commit()
        logger.debug("[VECTOR] Upserted %d points", len(points))

    def search(
        self,
        query_vector: list[float],
        top_k: int = 5,
        filters: Optional[dict] = None,
        min_score: float = 0.0,
    ) -> list[dict]:
        """Cosine-similarity search.

        Parameters
        ----------
        query_vector:
            The query embedding vector.
        top_k:
            Number of results to return.
        filters:
            Optional exact-match payload filters, e.g. ``{"language": "is"}``.
        min_score:
            Results scoring below this are discarded.

        Returns
        -------
        list[dict]
            Each dict has ``point_id``, ``score`` (float) and ``payload``
            (dict), best first.
        """
        with self._lock:
            conn = self._get_conn()
            rows = conn.execute("SELECT point_id, vector, payload FROM vectors").fetchall()

        if not rows or top_k <= 0:
            return []

        query_arr = np.asarray(query_vector, dtype=np.float32)

        # Decode payloads and apply pre-filters
        filtered: list[tuple[str, np.ndarray, dict]] = []
        skipped = 0
        for pid, vec_bytes, payload_json in rows:
            try:
                payload = json.loads(payload_json)
            except (json.JSONDecodeError, TypeError):
                payload = {}
            if filters and any(payload.get(k) != v for k, v in filters.items()):
                continue
            vec = _bytes_to_vec(vec_bytes)
            if vec.shape != query_arr.shape:
                skipped += 1
                continue
            filtered.append((pid, vec, payload))

        if skipped:
            logger.warning("[VECTOR] Skipped %d stored vectors with mismatched dimension", skipped)
        if not filtered:
            return []

        scores = _cosine_similarity_batch(query_arr, np.stack([row[1] for row in filtered]))

        if len(scores) <= top_k:
            top_indices = np.argsort(scores)[::-1]
        else:
            top_indices = np.argpartition(scores, -top_k)[-top_k:]
            top_indices = top_indices[np.argsort(scores[top_indices])[::-1]]

        results = []
        for idx in top_indices:
            score = float(scores[idx])
            if score <= 0 or score < min_score:
                continue
            results.append({
                "point_id": filtered[idx][0],
                "score": score,
                "payload": filtered[idx][2],
            })
        return results

    def count(self) -> int:
        """Number of stored points."""
        with self._lock:
            row = self._get_conn().execute("SELECT COUNT(*) FROM vectors").fetchone()
        return row[0] if row else 0

    def clear(self) -> None:
        """Delete every stored point."""
        with self._lock:
            conn = self._get_conn()
            conn.execute("DELETE FROM vectors")
            conn.commit()
        logger.debug("[VECTOR] Cleared vector store %s", self._db_path)
