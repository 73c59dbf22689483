"""
Per-request pipeline: detect -> select -> compose, timed end to end.

Example usage::

    from instruction_context import ContextEngine, InMemorySessionStore

    engine = ContextEngine.from_config()
    store = InMemorySessionStore()
    prompt = engine.handle("session-1", "What time do you close?", store)
    print(prompt.text)
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .config import Config
from .errors import PIPELINE_ERROR, UNSUPPORTED_LANGUAGE, warning
from .knowledge.backends import create_backend
from .knowledge.content import build_default_index
from .knowledge.detector import TopicDetector
from .knowledge.index import KnowledgeIndex
from .knowledge.loader import load_knowledge
from .knowledge.vector_fallback import VectorFallback
from .language import detect_language
from .models import (
    DEFAULT_LANGUAGE,
    SUPPORTED_LANGUAGES,
    ComposedPrompt,
    SessionContext,
    SessionUpdate,
)
from .modules import catalog
from .modules.composer import PromptComposer
from .modules.loader import load_modules
from .modules.registry import ModuleRegistry
from .monitor import PerformanceMonitor
from .session import SessionStore

logger = logging.getLogger(__name__)


def load_index(config: Config) -> KnowledgeIndex:
    """The configured knowledge file, or the bundled content."""
    if config.KNOWLEDGE_FILE:
        return load_knowledge(config.KNOWLEDGE_FILE)
    return build_default_index()


class ContextEngine:
    """
    Owns the startup-built, read-only pipeline components.

    One instance serves every request; nothing on the request path writes
    to it.  Build it with :meth:`from_config` unless a test needs to inject
    components.
    """

    def __init__(
        self,
        index: KnowledgeIndex,
        registry: ModuleRegistry,
        composer: PromptComposer,
        detector: TopicDetector,
        monitor: Optional[PerformanceMonitor] = None,
        broader_recall: bool = False,
    ) -> None:
        self.index = index
        self.registry = registry
        self.composer = composer
        self.detector = detector
        self.monitor = monitor or PerformanceMonitor()
        self.broader_recall = broader_recall

    @classmethod
    def from_config(cls, config: Optional[Config] = None) -> "ContextEngine":
        """Build every component once.  Raises :class:`ConfigurationError`."""
        config = config or Config.load()
        index = load_index(config)
        descriptors = load_modules(config.MODULES_FILE) if config.MODULES_FILE else catalog.MODULES
        registry = ModuleRegistry(descriptors, carry_last_topic=config.CARRY_LAST_TOPIC)
        composer = PromptComposer(registry, max_chars=config.MAX_CHARS)

        backend = create_backend(config)
        fallback = VectorFallback(
            backend, index,
            top_k=config.VECTOR_TOP_K,
            min_score=config.VECTOR_MIN_SCORE,
            timeout=config.VECTOR_TIMEOUT,
        )
        detector = TopicDetector(index, fallback, fragment_cap=config.FRAGMENT_CAP)
        monitor = PerformanceMonitor(config.THRESHOLDS)

        logger.info(
            "[ENGINE] Ready: %d fragments, %d modules, vector=%s, budget=%d",
            len(index), len(registry), backend.name, config.MAX_CHARS,
        )
        return cls(index, registry, composer, detector, monitor,
                   broader_recall=config.BROADER_RECALL)

    def close(self) -> None:
        if self.detector.fallback is not None:
            self.detector.fallback.close()

    # ------------------------------------------------------------------
    # Request path
    # ------------------------------------------------------------------

    def process(
        self,
        utterance: Optional[str],
        language: Optional[str],
        session: Optional[SessionContext] = None,
        cancel_event: Optional[threading.Event] = None,
        broader_recall: Optional[bool] = None,
    ) -> ComposedPrompt:
        """
        Assemble the instruction context for one turn.

        Never raises.  Unsupported languages fall back to English and any
        unexpected failure yields a prompt of mandatory modules only; both
        are reported through ``warnings``.
        """
        timer = self.monitor.start()
        warnings: list[str] = []

        lang = (language or "").strip().lower()
        if not lang:
            lang = DEFAULT_LANGUAGE
        elif lang not in SUPPORTED_LANGUAGES:
            warnings.append(warning(UNSUPPORTED_LANGUAGE, lang))
            logger.warning("[ENGINE] Unsupported language %r, using %r", lang, DEFAULT_LANGUAGE)
            lang = DEFAULT_LANGUAGE

        recall = self.broader_recall if broader_recall is None else broader_recall

        try:
            with timer.stage("retrieval"):
                detection = self.detector.detect(
                    utterance, lang, broader_recall=recall, cancel_event=cancel_event,
                )
            with timer.stage("selection"):
                modules = self.registry.select(detection.topics, lang, session)
            with timer.stage("composition"):
                prompt = self.composer.compose(modules, detection, lang, session)
        except Exception as exc:
            logger.exception("[ENGINE] Pipeline failed for %r", (utterance or "")[:50])
            prompt = self._minimal_prompt(lang, exc)

        prompt.warnings = warnings + prompt.warnings
        prompt.session_update = self._session_update(prompt, session, lang, utterance)

        timer.finish(utterance, prompt.ordered_modules)
        prompt.timings = dict(timer.timings)
        return prompt

    def handle(
        self,
        session_id: str,
        utterance: Optional[str],
        store: SessionStore,
        language: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ComposedPrompt:
        """
        Full round trip against a session store: read the snapshot, detect
        the language if not given, process, then propose the update.
        """
        session = store.get(session_id)
        if language is None:
            previous = session.language if session.message_count else None
            language = detect_language(utterance, previous).language
        prompt = self.process(utterance, language, session, cancel_event=cancel_event)
        if prompt.session_update is not None:
            store.propose(session_id, prompt.session_update)
        return prompt

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _minimal_prompt(self, language: str, exc: Exception) -> ComposedPrompt:
        detail = f"{type(exc).__name__}: {exc}"
        mandatory = self.registry.always_included(language)
        try:
            prompt = self.composer.compose(mandatory, None, language)
        except Exception:
            logger.exception("[ENGINE] Minimal composition failed")
            ordered = sorted(mandatory, key=self.registry.sort_key)
            text = "\n\n".join(
                [m.body(language).strip() for m in ordered] + [self.composer.directive(language)]
            )
            prompt = ComposedPrompt(
                ordered_modules=[m.id for m in ordered],
                total_length=len(text),
                text=text,
            )
        prompt.warnings.append(warning(PIPELINE_ERROR, detail))
        return prompt

    @staticmethod
    def _session_update(
        prompt: ComposedPrompt,
        session: Optional[SessionContext],
        language: str,
        utterance: Optional[str],
    ) -> SessionUpdate:
        topics = prompt.topics
        previous_topics = session.topics if session is not None else ()
        merged = list(previous_topics)
        for t in topics:
            if t in merged:
                merged.remove(t)
            merged.append(t)
        if topics:
            last_topic = topics[0]
        else:
            last_topic = session.last_topic if session is not None else None
        return SessionUpdate(
            last_topic=last_topic,
            topics=tuple(merged),
            language=language,
            utterance=utterance or None,
        )


# ---------------------------------------------------------------------------
# Default engine
# ---------------------------------------------------------------------------

_default_engine: Optional[ContextEngine] = None
_default_lock = threading.Lock()


def get_default_engine() -> ContextEngine:
    """Build the process-wide engine from the discovered config on first use."""
    global _default_engine
    if _default_engine is None:
        with _default_lock:
            if _default_engine is None:
                _default_engine = ContextEngine.from_config()
    return _default_engine


def process(
    utterance: Optional[str],
    language: Optional[str],
    session: Optional[SessionContext] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ComposedPrompt:
    """Module-level shortcut for ``get_default_engine().process(...)``."""
    return get_default_engine().process(utterance, language, session, cancel_event=cancel_event)
