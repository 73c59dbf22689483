"""
Topic detection: keyword index first, vector fallback second.

The detector owns the merge between both retrieval paths, the
content-hash deduplication and the per-request fragment cap.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from ..errors import DEGRADED_RETRIEVAL, warning
from ..models import SOURCE_RANK, KnowledgeFragment, MatchSource, TopicActivation
from .index import KnowledgeIndex
from .vector_fallback import VectorFallback

logger = logging.getLogger(__name__)

DEFAULT_FRAGMENT_CAP = 12


@dataclass
class DetectionResult:
    """Activations for one utterance plus retrieval bookkeeping."""

    activations: list[TopicActivation] = field(default_factory=list)
    fragment_sources: dict[str, MatchSource] = field(default_factory=dict)
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)
    used_vector: bool = False

    @property
    def topics(self) -> list[str]:
        return [a.topic for a in self.activations]

    @property
    def fragments(self) -> list[KnowledgeFragment]:
        """Distinct fragments in activation order."""
        return [f for a in self.activations for f in a.matched_fragments]

    def source_of(self, fragment: KnowledgeFragment) -> MatchSource:
        return self.fragment_sources.get(fragment.content_hash, MatchSource.KEYWORD)


class TopicDetector:
    """
    Parameters
    ----------
    index:
        Keyword index.
    fallback:
        Optional vector fallback.  ``None`` disables the vector path.
    fragment_cap:
        Maximum number of distinct fragments per request.
    """

    def __init__(
        self,
        index: KnowledgeIndex,
        fallback: Optional[VectorFallback] = None,
        fragment_cap: int = DEFAULT_FRAGMENT_CAP,
    ) -> None:
        if fragment_cap < 1:
            raise ValueError("fragment_cap must be at least 1")
        self.index = index
        self.fallback = fallback
        self.fragment_cap = fragment_cap

    def detect(
        self,
        utterance: Optional[str],
        language: str,
        broader_recall: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> DetectionResult:
        """
        Detect the active topics for *utterance*.

        The vector fallback runs only when the keyword path found nothing
        or *broader_recall* is set.  Never raises on retrieval failure; a
        degraded fallback adds a ``retrieval_degraded`` warning.
        """
        result = DetectionResult()
        keyword = self.index.query(utterance, language)

        vector: list[TopicActivation] = []
        if self.fallback is not None and (not keyword or broader_recall):
            result.used_vector = True
            outcome = self.fallback.search(utterance, language, cancel_event=cancel_event)
            vector = outcome.activations
            if outcome.degraded:
                result.degraded = True
                result.warnings.append(warning(DEGRADED_RETRIEVAL, outcome.reason))

        result.activations, result.fragment_sources = self._merge(keyword, vector)
        self._apply_cap(result)

        logger.debug(
            "[DETECT] %r (%s) -> topics=%s fragments=%d vector=%s degraded=%s",
            (utterance or "")[:50], language, result.topics,
            len(result.fragment_sources), result.used_vector, result.degraded,
        )
        return result

    # ------------------------------------------------------------------
    # Merge + dedupe
    # ------------------------------------------------------------------

    @staticmethod
    def _merge(
        keyword: list[TopicActivation],
        vector: list[TopicActivation],
    ) -> tuple[list[TopicActivation], dict[str, MatchSource]]:
        keyword_hashes = {f.content_hash for a in keyword for f in a.matched_fragments}
        vector_hashes = {f.content_hash for a in vector for f in a.matched_fragments}

        merged: dict[str, TopicActivation] = {}
        for act in keyword:
            merged[act.topic] = TopicActivation(
                act.topic, list(act.matched_fragments), MatchSource.KEYWORD,
            )
        for act in vector:
            existing = merged.get(act.topic)
            if existing is None:
                merged[act.topic] = TopicActivation(
                    act.topic, list(act.matched_fragments), MatchSource.VECTOR,
                )
            else:
                existing.matched_fragments.extend(act.matched_fragments)
                existing.source = MatchSource.COMBINED

        # First-seen wins across the whole result
        seen: set[str] = set()
        sources: dict[str, MatchSource] = {}
        for act in merged.values():
            kept = []
            for fragment in act.matched_fragments:
                digest = fragment.content_hash
                if digest in seen:
                    continue
                seen.add(digest)
                kept.append(fragment)
                if digest in keyword_hashes and digest in vector_hashes:
                    sources[digest] = MatchSource.COMBINED
                elif digest in keyword_hashes:
                    sources[digest] = MatchSource.KEYWORD
                else:
                    sources[digest] = MatchSource.VECTOR
            act.matched_fragments = kept

        return list(merged.values()), sources

    # ------------------------------------------------------------------
    # Cap
    # ------------------------------------------------------------------

    def _apply_cap(self, result: DetectionResult) -> None:
        fragments = result.fragments
        excess = len(fragments) - self.fragment_cap
        if excess <= 0:
            return

        # Lowest priority first; then vector before combined before keyword;
        # then later position first.
        order = sorted(
            range(len(fragments)),
            key=lambda i: (
                fragments[i].priority_hint,
                -SOURCE_RANK[result.source_of(fragments[i])],
                -i,
            ),
        )
        dropped = {fragments[i].content_hash for i in order[:excess]}
        for act in result.activations:
            act.matched_fragments = [
                f for f in act.matched_fragments if f.content_hash not in dropped
            ]
        for digest in dropped:
            result.fragment_sources.pop(digest, None)

        logger.info(
            "[DETECT] Fragment cap %d reached: dropped %d fragment(s)",
            self.fragment_cap, len(dropped),
        )
