"""
Vector-similarity fallback for utterances the keyword index misses.

The backend call is the pipeline's only network I/O.  It runs on a shared
worker pool and the caller waits at most ``timeout`` seconds, or less if
the request's ``cancel_event`` is set.  An unfinished call is abandoned;
its result is never read.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Optional

from ..errors import RetrievalDegraded
from ..models import KnowledgeFragment, MatchSource, TopicActivation
from .backends import NullSimilarityBackend, SimilarityBackend, SimilarityHit
from .index import KnowledgeIndex

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_MIN_SCORE = 0.5
DEFAULT_TIMEOUT = 3.0

# How often a waiting caller re-checks its cancel event
_POLL_INTERVAL = 0.05


@dataclass
class VectorResult:
    """Outcome of one fallback search."""

    activations: list[TopicActivation] = field(default_factory=list)
    degraded: bool = False
    reason: str = ""
    scores: dict[str, float] = field(default_factory=dict)


class VectorFallback:
    """
    Resolve backend similarity hits into vector-sourced topic activations.

    Parameters
    ----------
    backend:
        Any :class:`SimilarityBackend`.
    index:
        The knowledge index used to resolve fragment references.
    top_k:
        Maximum hits requested from the backend.
    min_score:
        Hits scoring below this are ignored even if the backend returns them.
    timeout:
        Upper bound, in seconds, on the wait for the backend.
    max_workers:
        Size of the shared worker pool.
    """

    def __init__(
        self,
        backend: SimilarityBackend,
        index: KnowledgeIndex,
        top_k: int = DEFAULT_TOP_K,
        min_score: float = DEFAULT_MIN_SCORE,
        timeout: float = DEFAULT_TIMEOUT,
        max_workers: int = 8,
    ) -> None:
        self.backend = backend
        self.index = index
        self.top_k = top_k
        self.min_score = min_score
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="vector-fallback",
        )

    def close(self) -> None:
        """Shut the worker pool down without waiting for abandoned calls."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        utterance: Optional[str],
        language: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> VectorResult:
        """
        Query the backend and resolve its hits.

        Never raises.  Timeout, cancellation, backend errors and malformed
        responses all produce ``VectorResult(degraded=True)``.
        """
        text = (utterance or "").strip()
        if not text or isinstance(self.backend, NullSimilarityBackend):
            return VectorResult()

        try:
            future = self._executor.submit(
                self.backend.similarity_search, text, language, self.top_k, self.min_score,
            )
        except RuntimeError as e:
            return self._degraded(f"worker pool unavailable: {e}")

        deadline = time.monotonic() + self.timeout
        while not future.done():
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                return self._degraded("cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                return self._degraded(f"timed out after {self.timeout:.1f}s")
            wait([future], timeout=min(remaining, _POLL_INTERVAL), return_when=FIRST_COMPLETED)

        try:
            hits = future.result()
        except RetrievalDegraded as e:
            return self._degraded(str(e))
        except Exception as e:
            return self._degraded(f"{type(e).__name__}: {e}")

        if not isinstance(hits, list):
            return self._degraded(f"backend returned {type(hits).__name__}, expected list")

        try:
            return self._resolve(hits, language)
        except (AttributeError, TypeError, ValueError) as e:
            return self._degraded(f"malformed hit: {e}")

    def _degraded(self, reason: str) -> VectorResult:
        logger.warning("[VECTOR] Similarity search degraded (%s): %s", self.backend.name, reason)
        return VectorResult(degraded=True, reason=reason)

    def _resolve(self, hits: list[SimilarityHit], language: str) -> VectorResult:
        best: dict[str, tuple[float, KnowledgeFragment]] = {}
        for hit in hits:
            score = float(hit.score)
            if score < self.min_score:
                continue
            fragment = self.index.resolve(hit.fragment_ref)
            if fragment is None:
                logger.debug("[VECTOR] Unknown fragment ref %r", hit.fragment_ref)
                continue
            if fragment.language != language:
                continue
            key = fragment.content_hash
            if key not in best or score > best[key][0]:
                best[key] = (score, fragment)

        ranked = sorted(best.values(), key=lambda pair: -pair[0])

        groups: dict[str, list[KnowledgeFragment]] = {}
        for _, fragment in ranked:
            groups.setdefault(fragment.primary_topic, []).append(fragment)

        activations = [
            TopicActivation(topic=topic, matched_fragments=fragments, source=MatchSource.VECTOR)
            for topic, fragments in groups.items()
        ]
        if activations:
            logger.debug(
                "[VECTOR] %d hit(s) resolved into topics %s",
                len(ranked), [a.topic for a in activations],
            )
        return VectorResult(
            activations=activations,
            scores={h: s for h, (s, _) in best.items()},
        )
