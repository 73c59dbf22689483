"""
Module registry: the catalog of instruction modules and the selection rule.

The registry validates the catalog once at construction and is read-only
afterwards.  Validation failures raise :class:`ConfigurationError` so a
broken catalog stops the process at startup instead of producing prompts
that silently lack mandatory instructions.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Optional

from ..errors import ConfigurationError
from ..models import (
    SUPPORTED_LANGUAGES,
    Category,
    ModuleDescriptor,
    Priority,
    SessionContext,
)

logger = logging.getLogger(__name__)


class ModuleRegistry:
    """
    Ordered, validated collection of :class:`ModuleDescriptor`.

    Parameters
    ----------
    descriptors:
        Modules in registration order.
    carry_last_topic:
        When no topic is active, select topic modules for the session's
        ``last_topic`` so short follow-ups keep their context.
    languages:
        Languages every always-include set must cover.
    """

    def __init__(
        self,
        descriptors: Iterable[ModuleDescriptor],
        carry_last_topic: bool = True,
        languages: Iterable[str] = SUPPORTED_LANGUAGES,
    ) -> None:
        self._descriptors: tuple[ModuleDescriptor, ...] = tuple(descriptors)
        self.carry_last_topic = carry_last_topic
        self.languages: tuple[str, ...] = tuple(languages)
        self._validate()
        self._by_id = MappingProxyType({d.id: d for d in self._descriptors})
        self._position = MappingProxyType({d.id: i for i, d in enumerate(self._descriptors)})
        logger.debug("[REGISTRY] %d modules registered", len(self._descriptors))

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        seen: set[str] = set()
        for d in self._descriptors:
            if d.id in seen:
                raise ConfigurationError(f"duplicate module id {d.id!r}")
            seen.add(d.id)
            if not isinstance(d.category, Category):
                raise ConfigurationError(f"module {d.id!r} has unknown category {d.category!r}")
            if not isinstance(d.priority, Priority):
                raise ConfigurationError(f"module {d.id!r} has unknown priority {d.priority!r}")
            if not any(d.language_gate.allows(lang) for lang in self.languages):
                raise ConfigurationError(
                    f"module {d.id!r} is gated to {list(d.language_gate.languages)}, "
                    f"which matches no supported language"
                )
            for lang in self.languages:
                if d.language_gate.allows(lang) and not d.body(lang).strip():
                    raise ConfigurationError(
                        f"module {d.id!r} accepts language {lang!r} but has no body for it"
                    )

        if not any(d.always_include for d in self._descriptors):
            raise ConfigurationError("module catalog has no always-include modules")

        for lang in self.languages:
            if not self.always_included(lang):
                raise ConfigurationError(
                    f"no always-include module accepts language {lang!r}"
                )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, module_id: str) -> bool:
        return module_id in self._by_id

    @property
    def descriptors(self) -> tuple[ModuleDescriptor, ...]:
        return self._descriptors

    def get(self, module_id: str) -> Optional[ModuleDescriptor]:
        return self._by_id.get(module_id)

    def position(self, module_id: str) -> int:
        """Registration index of *module_id*.  Raises ``KeyError`` if unknown."""
        return self._position[module_id]

    def sort_key(self, descriptor: ModuleDescriptor) -> tuple[int, int, int]:
        """Composition order: priority, then category, then registration."""
        return (int(descriptor.priority), int(descriptor.category), self._position[descriptor.id])

    def always_included(self, language: str) -> list[ModuleDescriptor]:
        return [
            d for d in self._descriptors
            if d.always_include and d.language_gate.allows(language)
        ]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(
        self,
        topics: Iterable[str],
        language: str,
        session: Optional[SessionContext] = None,
    ) -> list[ModuleDescriptor]:
        """
        Pick the modules for one request.

        Every always-include module the language gate accepts, plus every
        other gated-in module whose related topics intersect *topics*.
        Returned in registration order, without duplicates.
        """
        active = {t for t in topics if t}
        if not active and self.carry_last_topic and session is not None and session.last_topic:
            active = {session.last_topic}
            logger.debug("[REGISTRY] No active topic; carrying over %r", session.last_topic)

        selected: list[ModuleDescriptor] = []
        for d in self._descriptors:
            if not d.language_gate.allows(language):
                continue
            if d.always_include or (d.related_topics & active):
                selected.append(d)

        logger.debug(
            "[REGISTRY] Selected %d module(s) for topics=%s lang=%s",
            len(selected), sorted(active), language,
        )
        return selected
