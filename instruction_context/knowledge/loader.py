"""
Load knowledge content from YAML.

File layout::

    fragments:
      - id: en.hours.daily
        language: en
        topics: [hours]
        triggers: [opening hours]
        priority: 80
        body: |
          Opening hours vary by season...
    rules:
      - topic: age_policy
        terms: [age limit]
        all_of: [[age, "12"]]
        languages: []          # optional, empty = every language
    enrichments:
      - topic: packages
        when_any: [ritual, steps]
        add: ritual

Any problem with the file raises :class:`ConfigurationError`; content is
only loaded at startup.
"""

from __future__ import annotations

import logging

import yaml

from ..errors import ConfigurationError
from ..models import DEFAULT_PRIORITY_HINT, KnowledgeFragment
from .index import EnrichmentRule, KnowledgeIndex, TriggerRule

logger = logging.getLogger(__name__)


def _as_list(value, what: str, path: str) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigurationError(f"{path}: '{what}' must be a list")
    return value


def knowledge_from_dict(data: dict, path: str = "<memory>") -> KnowledgeIndex:
    """Build a :class:`KnowledgeIndex` from parsed YAML data."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    fragments: list[KnowledgeFragment] = []
    for i, item in enumerate(_as_list(data.get("fragments"), "fragments", path)):
        if not isinstance(item, dict):
            raise ConfigurationError(f"{path}: fragment #{i} must be a mapping")
        missing = [k for k in ("id", "language", "body") if not item.get(k)]
        if missing:
            raise ConfigurationError(
                f"{path}: fragment #{i} is missing {', '.join(missing)}"
            )
        try:
            priority = int(item.get("priority", DEFAULT_PRIORITY_HINT))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"{path}: fragment {item['id']!r} has a bad priority") from e
        fragments.append(KnowledgeFragment(
            id=str(item["id"]),
            language=str(item["language"]),
            topic_tags=tuple(_as_list(item.get("topics"), "topics", path)),
            trigger_terms=tuple(_as_list(item.get("triggers"), "triggers", path)),
            body_text=str(item["body"]).strip(),
            priority_hint=priority,
        ))

    rules: list[TriggerRule] = []
    for i, item in enumerate(_as_list(data.get("rules"), "rules", path)):
        if not isinstance(item, dict) or not item.get("topic"):
            raise ConfigurationError(f"{path}: rule #{i} needs a topic")
        groups = _as_list(item.get("all_of"), "all_of", path)
        if any(not isinstance(g, list) for g in groups):
            raise ConfigurationError(f"{path}: rule {item['topic']!r}: all_of must be a list of lists")
        rules.append(TriggerRule(
            topic=str(item["topic"]),
            terms=tuple(str(t) for t in _as_list(item.get("terms"), "terms", path)),
            conjunctions=tuple(tuple(str(t) for t in g) for g in groups),
            languages=tuple(_as_list(item.get("languages"), "languages", path)),
        ))

    enrichments: list[EnrichmentRule] = []
    for i, item in enumerate(_as_list(data.get("enrichments"), "enrichments", path)):
        if not isinstance(item, dict) or not item.get("topic") or not item.get("add"):
            raise ConfigurationError(f"{path}: enrichment #{i} needs 'topic' and 'add'")
        enrichments.append(EnrichmentRule(
            topic=str(item["topic"]),
            condition_terms=tuple(str(t) for t in _as_list(item.get("when_any"), "when_any", path)),
            dependent_topic=str(item["add"]),
        ))

    if not fragments:
        raise ConfigurationError(f"{path}: no fragments defined")

    return KnowledgeIndex(fragments, rules, enrichments)


def knowledge_to_dict(index: KnowledgeIndex, rules=(), enrichments=()) -> dict:
    """Inverse of :func:`knowledge_from_dict`, used by ``instruction-context export``."""
    return {
        "fragments": [
            {
                "id": f.id,
                "language": f.language,
                "topics": list(f.topic_tags),
                "triggers": list(f.trigger_terms),
                "priority": f.priority_hint,
                "body": f.body_text,
            }
            for f in index.fragments
        ],
        "rules": [
            {
                "topic": r.topic,
                "terms": list(r.terms),
                "all_of": [list(g) for g in r.conjunctions],
                "languages": list(r.languages),
            }
            for r in rules
        ],
        "enrichments": [
            {"topic": e.topic, "when_any": list(e.condition_terms), "add": e.dependent_topic}
            for e in enrichments
        ],
    }


def load_knowledge(path: str) -> KnowledgeIndex:
    """Read *path* and build the index.  Raises :class:`ConfigurationError`."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read knowledge file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in knowledge file {path}: {e}") from e

    index = knowledge_from_dict(data, path)
    logger.info("[INDEX] Loaded %d fragments from %s", len(index), path)
    return index
