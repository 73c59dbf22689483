"""
Data model shared by every stage of the pipeline.

Static records (fragments, module descriptors) are frozen dataclasses built
once at startup.  Per-request records (activations, composed prompts) are
plain dataclasses that never outlive the request.
"""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field
from typing import Mapping, Optional

SUPPORTED_LANGUAGES = ("en", "is")
DEFAULT_LANGUAGE = "en"
DEFAULT_PRIORITY_HINT = 50


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Priority(enum.IntEnum):
    """Module priority.  Lower value sorts first."""

    CRITICAL = 0
    HIGH = 1
    MEDIUM = 2
    LOW = 3

    @classmethod
    def parse(cls, value: "str | Priority") -> "Priority":
        if isinstance(value, cls):
            return value
        return cls[str(value).strip().upper()]


class Category(enum.IntEnum):
    """Module category, in composition order."""

    FOUNDATION = 0
    SEASONAL = 1
    SERVICES = 2
    POLICIES = 3
    LANGUAGE = 4
    FORMATTING = 5

    @classmethod
    def parse(cls, value: "str | Category") -> "Category":
        if isinstance(value, cls):
            return value
        return cls[str(value).strip().upper()]


class MatchSource(enum.Enum):
    """Which retrieval path produced an activation or fragment."""

    KEYWORD = "keyword"
    VECTOR = "vector"
    COMBINED = "combined"


# Lower rank = higher confidence.  Used when truncating.
SOURCE_RANK: dict[MatchSource, int] = {
    MatchSource.KEYWORD: 0,
    MatchSource.COMBINED: 1,
    MatchSource.VECTOR: 2,
}


class GateKind(enum.Enum):
    ANY = "any"
    LANGUAGE_EQUALS = "language_equals"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _unique(values) -> tuple[str, ...]:
    """Lower-case, strip and de-duplicate *values*, keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values or ():
        text = str(value).strip().lower()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)


def content_hash(language: str, body_text: str) -> str:
    """Structural identity of a fragment: SHA-256 of language + body."""
    digest = hashlib.sha256()
    digest.update(language.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(body_text.strip().encode("utf-8"))
    return digest.hexdigest()


# ---------------------------------------------------------------------------
# Knowledge
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KnowledgeFragment:
    """
    A single retrievable unit of domain knowledge.

    Attributes
    ----------
    id:
        Author-assigned identifier (not used for deduplication).
    language:
        ``"en"`` or ``"is"``.
    topic_tags:
        Topics this fragment belongs to.  The first tag is the primary one.
    trigger_terms:
        Terms whose presence in an utterance selects this fragment.
    body_text:
        The knowledge text handed to the model.
    priority_hint:
        Larger is more important.  Used when the fragment cap or the size
        budget forces truncation.
    """

    id: str
    language: str
    topic_tags: tuple[str, ...]
    trigger_terms: tuple[str, ...]
    body_text: str
    priority_hint: int = DEFAULT_PRIORITY_HINT

    def __post_init__(self) -> None:
        object.__setattr__(self, "language", self.language.strip().lower())
        object.__setattr__(self, "topic_tags", _unique(self.topic_tags))
        object.__setattr__(self, "trigger_terms", _unique(self.trigger_terms))

    @property
    def content_hash(self) -> str:
        return content_hash(self.language, self.body_text)

    @property
    def primary_topic(self) -> str:
        return self.topic_tags[0] if self.topic_tags else "general"


@dataclass
class TopicActivation:
    """One active topic for one request, with the fragments it contributed."""

    topic: str
    matched_fragments: list[KnowledgeFragment] = field(default_factory=list)
    source: MatchSource = MatchSource.KEYWORD


# ---------------------------------------------------------------------------
# Modules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LanguageGate:
    """Tagged predicate deciding whether a module applies to a language."""

    kind: GateKind = GateKind.ANY
    languages: tuple[str, ...] = ()

    def allows(self, language: str) -> bool:
        if self.kind is GateKind.ANY:
            return True
        if self.kind is GateKind.LANGUAGE_EQUALS:
            return language in self.languages
        return False

    @classmethod
    def any(cls) -> "LanguageGate":
        return cls(GateKind.ANY)

    @classmethod
    def only(cls, *languages: str) -> "LanguageGate":
        return cls(GateKind.LANGUAGE_EQUALS, _unique(languages))


@dataclass(frozen=True)
class ModuleDescriptor:
    """A unit of standing instruction text plus its selection metadata."""

    id: str
    priority: Priority
    category: Category
    bodies: Mapping[str, str]
    always_include: bool = False
    language_gate: LanguageGate = field(default_factory=LanguageGate.any)
    related_topics: frozenset[str] = frozenset()
    description: str = ""

    def body(self, language: str) -> str:
        return self.bodies.get(language, "")


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionContext:
    """Read-only snapshot of the session, owned by the session store."""

    session_id: str
    language: str = DEFAULT_LANGUAGE
    last_topic: Optional[str] = None
    seasonal_context: Optional[str] = None
    time_context: Optional[str] = None
    message_count: int = 0
    recent_messages: tuple[tuple[str, str], ...] = ()
    topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class SessionUpdate:
    """Proposed change to a session, applied by the session store."""

    last_topic: Optional[str]
    topics: tuple[str, ...]
    language: str
    utterance: Optional[str] = None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

@dataclass
class ComposedPrompt:
    """The ordered bundle of modules and fragments for one turn."""

    ordered_modules: list[str] = field(default_factory=list)
    attached_fragments: list[KnowledgeFragment] = field(default_factory=list)
    total_length: int = 0
    warnings: list[str] = field(default_factory=list)
    text: str = ""
    activations: list[TopicActivation] = field(default_factory=list)
    fragment_sources: dict[str, MatchSource] = field(default_factory=dict)
    session_update: Optional[SessionUpdate] = None
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def topics(self) -> list[str]:
        return [a.topic for a in self.activations]
