"""
End-to-end tests for instruction_context.engine

The engine is built from the bundled content.  Vector retrieval uses local
fake backends; nothing here touches the network.
"""

import os
import threading
from unittest.mock import patch

import pytest

import instruction_context.engine as engine_mod
from instruction_context import ConfigurationError, InMemorySessionStore, process
from instruction_context.config import Config
from instruction_context.engine import ContextEngine
from instruction_context.knowledge.backends import SimilarityBackend, SimilarityHit
from instruction_context.knowledge.content import build_default_index
from instruction_context.knowledge.detector import TopicDetector
from instruction_context.knowledge.vector_fallback import VectorFallback
from instruction_context.models import MatchSource, SessionContext
from instruction_context.modules import catalog
from instruction_context.modules.composer import PromptComposer
from instruction_context.modules.registry import ModuleRegistry


# ---------------------------------------------------------------------------
# Fakes + fixtures
# ---------------------------------------------------------------------------

class FakeBackend(SimilarityBackend):
    name = "fake"

    def __init__(self, hits):
        self.hits = hits

    def similarity_search(self, text, language, k, min_score):
        return self.hits


class BlockingBackend(SimilarityBackend):
    name = "blocking"

    def __init__(self):
        self.release = threading.Event()

    def similarity_search(self, text, language, k, min_score):
        self.release.wait(5)
        return []


@pytest.fixture
def make_engine():
    engines = []

    def _make(backend=None, timeout=1.0, **kwargs):
        index = build_default_index()
        registry = ModuleRegistry(catalog.MODULES)
        fallback = VectorFallback(backend, index, timeout=timeout) if backend else None
        engine = ContextEngine(index, registry, PromptComposer(registry),
                               TopicDetector(index, fallback), **kwargs)
        engines.append(engine)
        return engine

    yield _make
    for e in engines:
        e.close()


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("INSTRUCTION_CONTEXT_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


# A question no keyword rule or fragment term catches
UNMATCHED = "Is there somewhere to get a bite?"


# ---------------------------------------------------------------------------
# Keyword scenarios
# ---------------------------------------------------------------------------

class TestKeywordScenarios:

    def test_closing_time(self, make_engine):
        prompt = make_engine().process("What time do you close?", "en")

        assert prompt.topics == ["hours"]
        assert "formatting/time_format" in prompt.ordered_modules
        assert "en.hours.daily" in [f.id for f in prompt.attached_fragments]
        assert all(s is MatchSource.KEYWORD for s in prompt.fragment_sources.values())
        assert prompt.warnings == []
        assert prompt.text.endswith("RESPOND IN ENGLISH.")

    def test_age_conjunction(self, make_engine):
        prompt = make_engine().process("My son is 12, what age do you allow?", "en")
        assert prompt.topics == ["age_policy"]
        assert "policies/age_policy" in prompt.ordered_modules
        assert [f.id for f in prompt.attached_fragments] == ["en.age.policy"]

    def test_icelandic_request(self, make_engine):
        prompt = make_engine().process("Hvenær lokar lónið?", "is")
        assert "language/icelandic_rules" in prompt.ordered_modules
        assert "language/english_rules" not in prompt.ordered_modules
        assert all(f.language == "is" for f in prompt.attached_fragments)
        assert prompt.text.endswith("RESPOND IN ICELANDIC.")

    def test_no_match_is_warning_free(self, make_engine):
        engine = make_engine()
        prompt = engine.process("xyzzy", "en")
        assert prompt.attached_fragments == []
        assert prompt.warnings == []
        expected = {m.id for m in engine.registry.always_included("en")}
        assert set(prompt.ordered_modules) == expected

    def test_every_fragment_hash_is_unique(self, make_engine):
        prompt = make_engine().process(
            "How much is the package, is the ritual included and can I use a gift card?", "en",
        )
        hashes = [f.content_hash for f in prompt.attached_fragments]
        assert len(hashes) == len(set(hashes))

    def test_idempotent(self, make_engine):
        engine = make_engine()
        first = engine.process("What time do you close?", "en")
        second = engine.process("What time do you close?", "en")
        assert first.text == second.text
        assert first.ordered_modules == second.ordered_modules

    def test_timings_recorded(self, make_engine):
        prompt = make_engine().process("What time do you close?", "en")
        assert {"retrieval", "selection", "composition", "total"} <= set(prompt.timings)


# ---------------------------------------------------------------------------
# Vector scenarios
# ---------------------------------------------------------------------------

class TestVectorScenarios:

    def test_vector_fallback_supplies_fragments(self, make_engine):
        engine = make_engine(FakeBackend([SimilarityHit("en.dining.options", 0.9)]))
        prompt = engine.process(UNMATCHED, "en")

        assert prompt.topics == ["dining"]
        assert "services/dining" in prompt.ordered_modules
        fragment = prompt.attached_fragments[0]
        assert fragment.id == "en.dining.options"
        assert prompt.fragment_sources[fragment.content_hash] is MatchSource.VECTOR
        assert prompt.warnings == []

    def test_timeout_degrades_to_mandatory_prompt(self, make_engine):
        backend = BlockingBackend()
        engine = make_engine(backend, timeout=0.1)
        try:
            prompt = engine.process(UNMATCHED, "en")
        finally:
            backend.release.set()

        assert prompt.attached_fragments == []
        assert len(prompt.warnings) == 1
        assert prompt.warnings[0].startswith("retrieval_degraded: timed out")
        assert "core/identity" in prompt.ordered_modules

    def test_cancelled_request(self, make_engine):
        backend = BlockingBackend()
        engine = make_engine(backend, timeout=5)
        cancel = threading.Event()
        cancel.set()
        try:
            prompt = engine.process(UNMATCHED, "en", cancel_event=cancel)
        finally:
            backend.release.set()
        assert prompt.warnings == ["retrieval_degraded: cancelled"]

    def test_broader_recall_default_from_engine(self, make_engine):
        engine = make_engine(FakeBackend([SimilarityHit("en.ritual.steps", 0.9)]),
                             broader_recall=True)
        prompt = engine.process("What time do you close?", "en")
        assert prompt.topics == ["hours", "ritual"]


# ---------------------------------------------------------------------------
# Language handling + failures
# ---------------------------------------------------------------------------

class TestLanguageAndFailures:

    def test_unsupported_language_falls_back_with_warning(self, make_engine):
        prompt = make_engine().process("What time do you close?", "de")
        assert prompt.warnings == ["unsupported_language: de"]
        assert prompt.text.endswith("RESPOND IN ENGLISH.")
        assert prompt.session_update.language == "en"

    @pytest.mark.parametrize("language", [None, "", "  "])
    def test_missing_language_defaults_silently(self, make_engine, language):
        prompt = make_engine().process("What time do you close?", language)
        assert prompt.warnings == []
        assert "language/english_rules" in prompt.ordered_modules

    def test_language_is_case_insensitive(self, make_engine):
        prompt = make_engine().process("Hvenær lokar lónið?", "IS")
        assert prompt.warnings == []
        assert "language/icelandic_rules" in prompt.ordered_modules

    def test_pipeline_error_yields_minimal_prompt(self, make_engine):
        engine = make_engine()
        with patch.object(engine.detector, "detect", side_effect=RuntimeError("boom")):
            prompt = engine.process("What time do you close?", "en")

        assert prompt.warnings == ["pipeline_error: RuntimeError: boom"]
        assert prompt.attached_fragments == []
        assert set(prompt.ordered_modules) == {
            m.id for m in engine.registry.always_included("en")
        }
        assert prompt.text.endswith("RESPOND IN ENGLISH.")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:

    def test_session_update_proposed(self, make_engine):
        session = SessionContext("s", topics=("dining", "hours"))
        prompt = make_engine().process("What time do you close?", "en", session)
        update = prompt.session_update
        assert update.last_topic == "hours"
        assert update.topics == ("dining", "hours")
        assert update.utterance == "What time do you close?"

    def test_engine_does_not_mutate_session(self, make_engine):
        session = SessionContext("s", last_topic="dining")
        make_engine().process("What time do you close?", "en", session)
        assert session.last_topic == "dining"

    def test_follow_up_carries_last_topic(self, make_engine):
        session = SessionContext("s", last_topic="age_policy", message_count=1)
        prompt = make_engine().process("ok", "en", session)
        assert "policies/age_policy" in prompt.ordered_modules
        assert "Previous topic: age_policy" in prompt.text
        assert prompt.session_update.last_topic == "age_policy"

    def test_handle_round_trip(self, make_engine):
        engine = make_engine()
        store = InMemorySessionStore()

        first = engine.handle("s", "Hvenær lokar lónið?", store)
        assert first.text.endswith("RESPOND IN ICELANDIC.")
        assert store.get("s").last_topic == "hours"

        second = engine.handle("s", "Saman?", store)
        assert second.text.endswith("RESPOND IN ICELANDIC.")
        assert second.topics == ["packages"]

        session = store.get("s")
        assert session.message_count == 2
        assert session.topics == ("hours", "packages")
        assert session.recent_messages[-1] == ("user", "Saman?")

    def test_handle_explicit_language(self, make_engine):
        store = InMemorySessionStore()
        prompt = make_engine().handle("s", "Saman?", store, language="en")
        assert prompt.text.endswith("RESPOND IN ENGLISH.")


# ---------------------------------------------------------------------------
# Construction from config
# ---------------------------------------------------------------------------

class TestFromConfig:

    def test_defaults(self, isolated_env):
        engine = ContextEngine.from_config(Config())
        try:
            assert len(engine.index) > 0
            assert engine.detector.fallback.backend.name == "none"
            prompt = engine.process("xyzzy", "en")
            assert prompt.warnings == []
        finally:
            engine.close()

    def test_knowledge_file(self, isolated_env):
        path = isolated_env / "knowledge.yaml"
        path.write_text(
            "fragments:\n"
            "  - id: custom.hours\n"
            "    language: en\n"
            "    topics: [hours]\n"
            "    body: Open all night.\n"
            "rules:\n"
            "  - topic: hours\n"
            "    terms: [close]\n",
            encoding="utf-8",
        )
        engine = ContextEngine.from_config(Config({"knowledge_file": str(path)}))
        try:
            prompt = engine.process("when do you close", "en")
            assert [f.id for f in prompt.attached_fragments] == ["custom.hours"]
        finally:
            engine.close()

    def test_missing_modules_file_is_fatal(self, isolated_env):
        with pytest.raises(ConfigurationError):
            ContextEngine.from_config(Config({"modules_file": str(isolated_env / "nope.yaml")}))

    def test_budget_too_small_is_fatal(self, isolated_env):
        with pytest.raises(ConfigurationError, match="budget"):
            ContextEngine.from_config(Config({"max_chars": 100}))

    def test_module_level_process(self, isolated_env, monkeypatch):
        monkeypatch.setattr(engine_mod, "_default_engine", None)
        try:
            prompt = process("What time do you close?", "en")
            assert prompt.topics == ["hours"]
            assert engine_mod.get_default_engine() is engine_mod.get_default_engine()
        finally:
            if engine_mod._default_engine is not None:
                engine_mod._default_engine.close()
