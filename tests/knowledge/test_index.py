"""
Unit tests for instruction_context.knowledge.index

Covers trigger rules (single terms and conjunctions), fragment-term
activation, cross-topic enrichment, language filtering and ordering.
"""

from __future__ import annotations

import pytest

from instruction_context.knowledge.index import (
    EnrichmentRule,
    KnowledgeIndex,
    TriggerRule,
    normalize_utterance,
)
from instruction_context.models import KnowledgeFragment, MatchSource


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _frag(fid, lang, tags, terms=(), body=None, priority=50):
    return KnowledgeFragment(
        id=fid, language=lang, topic_tags=tuple(tags), trigger_terms=tuple(terms),
        body_text=body or f"body of {fid}", priority_hint=priority,
    )


@pytest.fixture
def index():
    fragments = [
        _frag("en.hours", "en", ["hours"], ["what time"]),
        _frag("en.hours.holiday", "en", ["hours"], ["christmas"]),
        _frag("is.hours", "is", ["hours"], ["hvenær"]),
        _frag("en.age", "en", ["age_policy"], ["kids"]),
        _frag("en.packages", "en", ["packages"], ["saman"]),
        _frag("en.ritual", "en", ["ritual"], ["sauna"]),
        _frag("en.dining", "en", ["dining"], ["vegan"]),
        _frag("en.dining.bar", "en", ["dining"], ["cocktail"]),
    ]
    rules = [
        TriggerRule("hours", terms=("close", "open", "lokar")),
        TriggerRule("age_policy", terms=("age limit",), conjunctions=(("age", "12"),)),
        TriggerRule("packages", terms=("package", "price")),
        TriggerRule("ritual", terms=("ritual",)),
    ]
    enrichments = [
        EnrichmentRule("packages", ("steps", "included"), "ritual"),
    ]
    return KnowledgeIndex(fragments, rules, enrichments)


# ---------------------------------------------------------------------------
# Single-term rules
# ---------------------------------------------------------------------------

class TestSingleTermRules:

    def test_close_activates_hours(self, index):
        acts = index.query("what time do you close", "en")
        assert [a.topic for a in acts] == ["hours"]
        assert acts[0].source is MatchSource.KEYWORD

    def test_rule_activation_attaches_all_topic_fragments(self, index):
        acts = index.query("when do you close?", "en")
        ids = [f.id for f in acts[0].matched_fragments]
        assert ids == ["en.hours", "en.hours.holiday"]

    def test_substring_match_inside_longer_word(self, index):
        assert [a.topic for a in index.query("are you closed on sunday", "en")] == ["hours"]
        assert [a.topic for a in index.query("closest bus stop", "en")] == ["hours"]

    def test_case_insensitive(self, index):
        assert [a.topic for a in index.query("WHEN DO YOU CLOSE", "en")] == ["hours"]

    def test_topics_are_not_exclusive(self, index):
        acts = index.query("what is the price and when do you open", "en")
        assert {a.topic for a in acts} == {"hours", "packages"}


# ---------------------------------------------------------------------------
# Conjunctions
# ---------------------------------------------------------------------------

class TestConjunctionRules:

    def test_only_one_term_does_not_activate(self, index):
        assert index.query("what age can visit", "en") == []
        assert index.query("we are a group of 12", "en") == []

    def test_both_terms_activate(self, index):
        acts = index.query("my son is 12, is that the right age?", "en")
        assert [a.topic for a in acts] == ["age_policy"]
        assert [f.id for f in acts[0].matched_fragments] == ["en.age"]

    def test_single_term_on_same_rule_still_works(self, index):
        assert [a.topic for a in index.query("is there an age limit", "en")] == ["age_policy"]


# ---------------------------------------------------------------------------
# Fragment trigger terms
# ---------------------------------------------------------------------------

class TestFragmentTerms:

    def test_fragment_term_activates_its_topic(self, index):
        acts = index.query("do you have vegan options", "en")
        assert [a.topic for a in acts] == ["dining"]

    def test_term_only_activation_keeps_matched_fragments_only(self, index):
        acts = index.query("do you have vegan options", "en")
        assert [f.id for f in acts[0].matched_fragments] == ["en.dining"]

    def test_fragment_terms_respect_language(self, index):
        assert index.query("hvenær", "en") == []
        acts = index.query("hvenær", "is")
        assert [f.id for f in acts[0].matched_fragments] == ["is.hours"]


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------

class TestEnrichment:

    def test_dependent_topic_added_when_condition_holds(self, index):
        acts = index.query("which steps are included in the package", "en")
        assert [a.topic for a in acts] == ["packages", "ritual"]
        assert [f.id for f in acts[1].matched_fragments] == ["en.ritual"]

    def test_no_enrichment_without_condition(self, index):
        acts = index.query("how much is the package", "en")
        assert [a.topic for a in acts] == ["packages"]

    def test_enrichment_only_from_primary_topics(self):
        rules = [TriggerRule("a", terms=("alpha",))]
        enrichments = [
            EnrichmentRule("a", ("x",), "b"),
            EnrichmentRule("b", ("x",), "c"),
        ]
        idx = KnowledgeIndex([], rules, enrichments)
        assert [a.topic for a in idx.query("alpha x", "en")] == ["a", "b"]


# ---------------------------------------------------------------------------
# Language filtering + ordering
# ---------------------------------------------------------------------------

class TestLanguageAndOrdering:

    def test_icelandic_rule_gets_icelandic_fragments(self, index):
        acts = index.query("hvenær lokar lónið", "is")
        assert [a.topic for a in acts] == ["hours"]
        assert all(f.language == "is" for f in acts[0].matched_fragments)

    def test_rule_topic_with_no_language_fragments_still_activates(self, index):
        acts = index.query("what does the ritual cost", "is")
        assert [a.topic for a in acts] == ["ritual"]
        assert acts[0].matched_fragments == []

    def test_output_follows_registration_order(self, index):
        acts = index.query("ritual price close", "en")
        assert [a.topic for a in acts] == ["hours", "packages", "ritual"]

    def test_language_partition_per_rule(self):
        rules = [TriggerRule("hours", terms=("opið",), languages=("is",))]
        idx = KnowledgeIndex([], rules)
        assert idx.query("er opið", "en") == []
        assert [a.topic for a in idx.query("er opið", "is")] == ["hours"]


# ---------------------------------------------------------------------------
# Edge cases + lookups
# ---------------------------------------------------------------------------

class TestEdgeCases:

    @pytest.mark.parametrize("utterance", [None, "", "   ", "xyzzy"])
    def test_empty_or_unmatched_returns_empty(self, index, utterance):
        assert index.query(utterance, "en") == []

    def test_normalize_utterance(self):
        assert normalize_utterance(None) == ""
        assert normalize_utterance("HeLLo") == "hello"

    def test_duplicate_id_keeps_first(self):
        a = _frag("dup", "en", ["x"], body="first")
        b = _frag("dup", "en", ["x"], body="second")
        idx = KnowledgeIndex([a, b])
        assert len(idx) == 1
        assert idx.get("dup").body_text == "first"

    def test_resolve_by_id_and_hash(self, index):
        frag = index.get("en.ritual")
        assert index.resolve("en.ritual") is frag
        assert index.resolve(frag.content_hash) is frag
        assert index.resolve("missing") is None

    def test_rule_topics_ignores_fragment_terms(self, index):
        assert index.rule_topics("vegan close") == {"hours"}

    def test_lookups_are_read_only(self, index):
        with pytest.raises(TypeError):
            index._by_id["new"] = None
        assert isinstance(index.topics, tuple)
        assert index.languages == ("en", "is")
