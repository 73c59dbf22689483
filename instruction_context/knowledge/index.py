"""
Keyword index over knowledge fragments.

The index is built once from static content and only answers queries
afterwards.  Matching is driven by two declarative tables:

* :class:`TriggerRule`: which terms (or conjunctions of terms) activate a
  topic;
* :class:`EnrichmentRule`: which extra topic an active topic pulls in when
  a secondary condition also holds on the same utterance.

Terms are matched by case-insensitive substring containment against the
whole utterance, not by word boundaries: ``"close"`` matches inside
``"closed"``.  Downstream composition tolerates false positives but not
false negatives, so the loose match is kept on purpose.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Optional

from ..models import KnowledgeFragment, MatchSource, TopicActivation, _unique

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TriggerRule:
    """
    Activation rule for one topic.

    Attributes
    ----------
    topic:
        Topic label activated by this rule.
    terms:
        Any single term present in the utterance activates the topic.
    conjunctions:
        Groups of terms; a group activates the topic only when *every* term
        in it is present.
    languages:
        Restrict the rule to these languages.  Empty means all.
    """

    topic: str
    terms: tuple[str, ...] = ()
    conjunctions: tuple[tuple[str, ...], ...] = ()
    languages: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "topic", self.topic.strip().lower())
        object.__setattr__(self, "terms", _unique(self.terms))
        object.__setattr__(
            self, "conjunctions",
            tuple(g for g in (_unique(group) for group in self.conjunctions) if g),
        )
        object.__setattr__(self, "languages", _unique(self.languages))

    def applies_to(self, language: str) -> bool:
        return not self.languages or language in self.languages

    def matches(self, text: str) -> bool:
        """Return True if *text* (already lower-cased) satisfies the rule."""
        if any(term in text for term in self.terms):
            return True
        return any(all(term in text for term in group) for group in self.conjunctions)


@dataclass(frozen=True)
class EnrichmentRule:
    """When *topic* is active and any *condition_terms* occur, add *dependent_topic*."""

    topic: str
    condition_terms: tuple[str, ...]
    dependent_topic: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "topic", self.topic.strip().lower())
        object.__setattr__(self, "condition_terms", _unique(self.condition_terms))
        object.__setattr__(self, "dependent_topic", self.dependent_topic.strip().lower())

    def holds(self, text: str) -> bool:
        return any(term in text for term in self.condition_terms)


def normalize_utterance(utterance: Optional[str]) -> str:
    """Lower-case *utterance*; ``None`` becomes the empty string."""
    if not utterance:
        return ""
    return str(utterance).lower()


# ---------------------------------------------------------------------------
# KnowledgeIndex
# ---------------------------------------------------------------------------

class KnowledgeIndex:
    """
    Immutable, language-partitioned index of :class:`KnowledgeFragment`.

    Parameters
    ----------
    fragments:
        All fragments, in registration order.
    rules:
        Topic trigger rules, in registration order.
    enrichments:
        Cross-topic enrichment rules.

    The instance is safe to share between threads: every container is a
    tuple or a read-only mapping and nothing is written after ``__init__``.
    """

    def __init__(
        self,
        fragments: Iterable[KnowledgeFragment],
        rules: Iterable[TriggerRule] = (),
        enrichments: Iterable[EnrichmentRule] = (),
    ) -> None:
        self._fragments: tuple[KnowledgeFragment, ...] = tuple(fragments)
        self._rules: tuple[TriggerRule, ...] = tuple(rules)

        by_id: dict[str, KnowledgeFragment] = {}
        by_hash: dict[str, KnowledgeFragment] = {}
        for fragment in self._fragments:
            if fragment.id in by_id:
                logger.warning("[INDEX] Duplicate fragment id %r; keeping the first", fragment.id)
                continue
            by_id[fragment.id] = fragment
            by_hash.setdefault(fragment.content_hash, fragment)

        # Topic registration order: rule topics first, then fragment tags.
        topic_order: dict[str, None] = {}
        for rule in self._rules:
            topic_order.setdefault(rule.topic, None)
        for fragment in self._fragments:
            for tag in fragment.topic_tags:
                topic_order.setdefault(tag, None)
        self._topics: tuple[str, ...] = tuple(topic_order)
        self._topic_rank = MappingProxyType({t: i for i, t in enumerate(self._topics)})

        # (topic, language) -> fragments tagged with topic in that language
        partition: dict[tuple[str, str], list[KnowledgeFragment]] = {}
        for fragment in by_id.values():
            for tag in fragment.topic_tags:
                partition.setdefault((tag, fragment.language), []).append(fragment)
        self._by_topic = MappingProxyType({k: tuple(v) for k, v in partition.items()})

        enrich: dict[str, list[EnrichmentRule]] = {}
        for rule in enrichments:
            enrich.setdefault(rule.topic, []).append(rule)
        self._enrichments = MappingProxyType({k: tuple(v) for k, v in enrich.items()})

        self._by_id = MappingProxyType(by_id)
        self._by_hash = MappingProxyType(by_hash)
        self._languages = tuple(sorted({f.language for f in by_id.values()}))

        logger.debug(
            "[INDEX] Built index: %d fragments, %d topics, %d rules, languages=%s",
            len(by_id), len(self._topics), len(self._rules), self._languages,
        )

    # ------------------------------------------------------------------
    # Read-only lookups
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._by_id)

    @property
    def topics(self) -> tuple[str, ...]:
        return self._topics

    @property
    def languages(self) -> tuple[str, ...]:
        return self._languages

    @property
    def fragments(self) -> tuple[KnowledgeFragment, ...]:
        return tuple(self._by_id.values())

    def get(self, fragment_id: str) -> Optional[KnowledgeFragment]:
        return self._by_id.get(fragment_id)

    def get_by_hash(self, digest: str) -> Optional[KnowledgeFragment]:
        return self._by_hash.get(digest)

    def resolve(self, ref: str) -> Optional[KnowledgeFragment]:
        """Resolve a fragment reference given either as id or content hash."""
        return self._by_id.get(ref) or self._by_hash.get(ref)

    def fragments_for_topic(self, topic: str, language: str) -> tuple[KnowledgeFragment, ...]:
        return self._by_topic.get((topic, language), ())

    def topic_rank(self, topic: str) -> int:
        return self._topic_rank.get(topic, len(self._topics))

    def _order_key(self, topic: str) -> tuple[int, str]:
        return (self.topic_rank(topic), topic)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def rule_topics(self, utterance: Optional[str], language: Optional[str] = None) -> set[str]:
        """Topics whose trigger rules match *utterance*, ignoring fragment terms."""
        text = normalize_utterance(utterance)
        if not text:
            return set()
        return {
            rule.topic for rule in self._rules
            if (language is None or rule.applies_to(language)) and rule.matches(text)
        }

    def query(self, utterance: Optional[str], language: str) -> list[TopicActivation]:
        """
        Return the topic activations for *utterance* in *language*.

        Parameters
        ----------
        utterance:
            Raw user text.
        language:
            Request language; fragments in any other language are excluded.

        Returns
        -------
        list[TopicActivation]
            One keyword-sourced activation per active topic, in topic
            registration order.  Empty when nothing matches.
        """
        text = normalize_utterance(utterance)
        if not text:
            return []

        # 1. Topics activated by the rule table
        rule_hits = self.rule_topics(text, language)

        # 2. Fragments whose own trigger terms occur in the utterance
        term_hits: dict[str, list[KnowledgeFragment]] = {}
        for fragment in self._by_id.values():
            if fragment.language != language:
                continue
            if any(term in text for term in fragment.trigger_terms):
                for tag in fragment.topic_tags:
                    term_hits.setdefault(tag, []).append(fragment)

        primary = rule_hits | set(term_hits)

        # 3. Cross-topic enrichment, evaluated on primary topics only
        enriched: set[str] = set()
        for topic in sorted(primary, key=self._order_key):
            for rule in self._enrichments.get(topic, ()):
                if rule.dependent_topic not in primary and rule.holds(text):
                    enriched.add(rule.dependent_topic)
                    logger.debug(
                        "[INDEX] Topic %r enriched with %r", topic, rule.dependent_topic,
                    )

        activations: list[TopicActivation] = []
        for topic in sorted(primary | enriched, key=self._order_key):
            if topic in rule_hits or topic in enriched:
                fragments = list(self.fragments_for_topic(topic, language))
            else:
                fragments = term_hits[topic]
            activations.append(
                TopicActivation(topic=topic, matched_fragments=fragments,
                                source=MatchSource.KEYWORD)
            )

        if activations:
            logger.debug(
                "[INDEX] %d topic(s) for %r: %s",
                len(activations), text[:60], [a.topic for a in activations],
            )
        return activations
