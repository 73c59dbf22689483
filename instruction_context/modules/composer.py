"""
Prompt composer: orders the selected modules, attaches knowledge and
enforces the size budget.

Layout of the rendered text::

    <module bodies, blank-line separated>

    KNOWLEDGE BASE DATA:
    ### HOURS
    <fragment body>

    CONVERSATION CONTEXT:
    <last topic / season / time / recent messages>

    RESPOND IN ENGLISH.

Budget trimming (first step that makes the text fit wins):

1. drop optional modules, last in composition order first;
2. drop fragments while more than one remains (vector before combined
   before keyword, lower priority first, later position first);
3. drop the conversation context;
4. clip the body of the last remaining fragment.

Mandatory modules, the language directive and one (possibly clipped)
fragment are never dropped: the constructor refuses a budget that cannot
hold the mandatory text plus the knowledge header, a topic heading and
``MIN_CLIP_CHARS`` of fragment body.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import BUDGET_EXCEEDED, ConfigurationError, warning
from ..models import (
    DEFAULT_LANGUAGE,
    SOURCE_RANK,
    ComposedPrompt,
    KnowledgeFragment,
    MatchSource,
    ModuleDescriptor,
    SessionContext,
)
from ..knowledge.detector import DetectionResult
from .registry import ModuleRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 24000

LANGUAGE_DIRECTIVES = {
    "en": "RESPOND IN ENGLISH.",
    "is": "RESPOND IN ICELANDIC.",
}

KNOWLEDGE_HEADER = "KNOWLEDGE BASE DATA:"
CONTEXT_HEADER = "CONVERSATION CONTEXT:"
CLIP_MARKER = " [...]"
MIN_CLIP_CHARS = 20
TOPIC_LABEL_MAX = 40

RECENT_MESSAGES = 3
MESSAGE_CLIP = 100


@dataclass(eq=False)
class _Entry:
    topic: str
    fragment: KnowledgeFragment
    source: MatchSource
    body: str


class PromptComposer:
    """
    Parameters
    ----------
    registry:
        The module registry; supplies composition order and the mandatory
        module set per language.
    max_chars:
        Size budget for the rendered text.
    """

    def __init__(self, registry: ModuleRegistry, max_chars: int = DEFAULT_MAX_CHARS) -> None:
        self.registry = registry
        self.max_chars = max_chars
        self._validate_budget()

    def _validate_budget(self) -> None:
        reserve = (len(f"\n\n{KNOWLEDGE_HEADER}\n### \n") + TOPIC_LABEL_MAX
                   + MIN_CLIP_CHARS + len(CLIP_MARKER))
        for lang in self.registry.languages:
            mandatory = sorted(self.registry.always_included(lang), key=self.registry.sort_key)
            size = len(self._render(mandatory, [], None, lang)) + reserve
            if size > self.max_chars:
                raise ConfigurationError(
                    f"mandatory modules for {lang!r} plus one clipped fragment need "
                    f"{size} chars, budget is {self.max_chars}"
                )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @staticmethod
    def topic_label(topic: str) -> str:
        return topic.replace("_", " ").upper()[:TOPIC_LABEL_MAX]

    @staticmethod
    def directive(language: str) -> str:
        return LANGUAGE_DIRECTIVES.get(language, LANGUAGE_DIRECTIVES[DEFAULT_LANGUAGE])

    @staticmethod
    def context_block(session: Optional[SessionContext]) -> str:
        """Render the CONVERSATION CONTEXT block; empty when there is nothing to say."""
        if session is None:
            return ""
        lines: list[str] = []
        if session.last_topic:
            lines.append(f"Previous topic: {session.last_topic}")
        if session.seasonal_context:
            lines.append(f"Season: {session.seasonal_context}")
        if session.time_context:
            lines.append(f"Time: {session.time_context}")
        recent = session.recent_messages[-RECENT_MESSAGES:]
        if recent:
            lines.append("Recent messages:")
            for role, text in recent:
                clipped = text[:MESSAGE_CLIP] + ("..." if len(text) > MESSAGE_CLIP else "")
                lines.append(f"- {role}: {clipped}")
        if not lines:
            return ""
        return "\n".join([CONTEXT_HEADER] + lines)

    def _render(
        self,
        modules: list[ModuleDescriptor],
        entries: list[_Entry],
        context: Optional[str],
        language: str,
    ) -> str:
        sections = [m.body(language).strip() for m in modules]
        if entries:
            parts = [KNOWLEDGE_HEADER]
            for e in entries:
                parts.append(f"### {self.topic_label(e.topic)}\n{e.body}")
            sections.append("\n".join(parts))
        if context:
            sections.append(context)
        sections.append(self.directive(language))
        return "\n\n".join(s for s in sections if s)

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    def compose(
        self,
        modules: list[ModuleDescriptor],
        detection: Optional[DetectionResult],
        language: str,
        session: Optional[SessionContext] = None,
    ) -> ComposedPrompt:
        """
        Build the :class:`ComposedPrompt` for one request.

        Parameters
        ----------
        modules:
            Output of :meth:`ModuleRegistry.select`.  Mandatory modules
            missing from it are added; gated-out modules are skipped.
        detection:
            Output of the topic detector, or ``None`` for no knowledge.
        language:
            Request language.
        session:
            Optional session snapshot for the conversation context block.
        """
        ordered = self._order(modules, language)

        entries: list[_Entry] = []
        if detection is not None:
            for act in detection.activations:
                for fragment in act.matched_fragments:
                    entries.append(_Entry(
                        act.topic, fragment, detection.source_of(fragment),
                        fragment.body_text.strip(),
                    ))

        context = self.context_block(session)
        warnings: list[str] = list(detection.warnings) if detection is not None else []

        text = self._render(ordered, entries, context, language)
        if len(text) > self.max_chars:
            text = self._fit(ordered, entries, context, language, warnings)

        attached = [e.fragment for e in entries]
        sources = {} if detection is None else {
            f.content_hash: detection.source_of(f) for f in attached
        }
        prompt = ComposedPrompt(
            ordered_modules=[m.id for m in ordered],
            attached_fragments=attached,
            total_length=len(text),
            warnings=warnings,
            text=text,
            activations=list(detection.activations) if detection is not None else [],
            fragment_sources=sources,
        )
        logger.debug(
            "[COMPOSE] %d modules, %d fragments, %d chars (%s)",
            len(prompt.ordered_modules), len(attached), prompt.total_length, language,
        )
        return prompt

    def _order(self, modules: list[ModuleDescriptor], language: str) -> list[ModuleDescriptor]:
        chosen: dict[str, ModuleDescriptor] = {}
        for m in list(modules) + self.registry.always_included(language):
            if m.id in chosen or m.id not in self.registry:
                continue
            if not m.language_gate.allows(language):
                logger.warning("[COMPOSE] Skipping module %r: gated out for %r", m.id, language)
                continue
            chosen[m.id] = m
        return sorted(chosen.values(), key=self.registry.sort_key)

    def _fit(
        self,
        ordered: list[ModuleDescriptor],
        entries: list[_Entry],
        context: Optional[str],
        language: str,
        warnings: list[str],
    ) -> str:
        """Trim in place until the rendering fits.  Returns the final text."""

        def render() -> str:
            return self._render(ordered, entries, context, language)

        text = render()

        # 1. Optional modules, last in composition order first
        dropped: list[str] = []
        for m in reversed(list(ordered)):
            if len(text) <= self.max_chars:
                break
            if m.always_include:
                continue
            ordered.remove(m)
            dropped.append(m.id)
            text = render()
        if dropped:
            warnings.append(warning(BUDGET_EXCEEDED, f"dropped modules {', '.join(dropped)}"))

        # 2. Fragments, least valuable first, keeping at least one
        dropped = []
        if len(text) > self.max_chars and len(entries) > 1:
            victims = [
                entries[i] for i in sorted(
                    range(len(entries)),
                    key=lambda i: (
                        -SOURCE_RANK[entries[i].source],
                        entries[i].fragment.priority_hint,
                        -i,
                    ),
                )
            ]
            for victim in victims:
                if len(text) <= self.max_chars or len(entries) == 1:
                    break
                entries.remove(victim)
                dropped.append(victim.fragment.id)
                text = render()
        if dropped:
            warnings.append(warning(BUDGET_EXCEEDED, f"dropped fragments {', '.join(dropped)}"))

        # 3. Conversation context
        if len(text) > self.max_chars and context:
            context = None
            text = render()
            warnings.append(warning(BUDGET_EXCEEDED, "dropped conversation context"))

        # 4. Clip the last fragment; the budget check at construction leaves
        # at least MIN_CLIP_CHARS of it
        if len(text) > self.max_chars and entries:
            last = entries[-1]
            overflow = len(text) - self.max_chars
            keep = len(last.body) - overflow - len(CLIP_MARKER)
            last.body = last.body[:keep].rstrip() + CLIP_MARKER
            warnings.append(warning(BUDGET_EXCEEDED, f"clipped fragment {last.fragment.id}"))
            text = render()

        logger.info("[COMPOSE] Budget %d exceeded; trimmed to %d chars", self.max_chars, len(text))
        return text
