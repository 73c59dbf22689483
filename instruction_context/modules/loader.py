"""
Load the instruction module catalog from YAML.

File layout::

    modules:
      - id: core/identity
        priority: critical           # critical | high | medium | low
        category: foundation         # foundation | seasonal | services |
                                     # policies | language | formatting
        always_include: true
        languages: [is]              # optional; omitted = every language
        related_topics: [packages]
        description: Core identity
        bodies:
          en: |
            You are ...
          is: |
            Þú ert ...

Entries keep file order, which becomes registration order.
"""

from __future__ import annotations

import logging

import yaml

from ..errors import ConfigurationError
from ..models import Category, GateKind, LanguageGate, ModuleDescriptor, Priority

logger = logging.getLogger(__name__)


def _as_list(value, what: str, module_id: str, path: str) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ConfigurationError(f"{path}: module {module_id!r}: '{what}' must be a list")
    return value


def _descriptor(item: dict, path: str) -> ModuleDescriptor:
    module_id = item.get("id")
    if not module_id:
        raise ConfigurationError(f"{path}: module entry without an id")
    try:
        priority = Priority.parse(item.get("priority", "medium"))
    except KeyError as e:
        raise ConfigurationError(f"{path}: module {module_id!r} has unknown priority {item.get('priority')!r}") from e
    try:
        category = Category.parse(item["category"])
    except KeyError as e:
        raise ConfigurationError(f"{path}: module {module_id!r} has unknown category {item.get('category')!r}") from e

    bodies = item.get("bodies") or {}
    if not isinstance(bodies, dict):
        raise ConfigurationError(f"{path}: module {module_id!r}: bodies must be a mapping")

    languages = _as_list(item.get("languages"), "languages", module_id, path)
    gate = LanguageGate.only(*languages) if languages else LanguageGate.any()
    topics = _as_list(item.get("related_topics"), "related_topics", module_id, path)

    return ModuleDescriptor(
        id=str(module_id),
        priority=priority,
        category=category,
        bodies={str(k): str(v).strip() for k, v in bodies.items()},
        always_include=bool(item.get("always_include", False)),
        language_gate=gate,
        related_topics=frozenset(str(t).strip().lower() for t in topics),
        description=str(item.get("description", "")),
    )


def modules_from_dict(data: dict, path: str = "<memory>") -> list[ModuleDescriptor]:
    if not isinstance(data, dict) or not isinstance(data.get("modules"), list):
        raise ConfigurationError(f"{path}: expected a top-level 'modules' list")
    descriptors = []
    for item in data["modules"]:
        if not isinstance(item, dict):
            raise ConfigurationError(f"{path}: module entries must be mappings")
        descriptors.append(_descriptor(item, path))
    return descriptors


def modules_to_dict(descriptors) -> dict:
    """Inverse of :func:`modules_from_dict`."""
    out = []
    for d in descriptors:
        entry = {
            "id": d.id,
            "priority": d.priority.name.lower(),
            "category": d.category.name.lower(),
            "always_include": d.always_include,
            "related_topics": sorted(d.related_topics),
            "description": d.description,
            "bodies": dict(d.bodies),
        }
        if d.language_gate.kind is GateKind.LANGUAGE_EQUALS:
            entry["languages"] = list(d.language_gate.languages)
        out.append(entry)
    return {"modules": out}


def load_modules(path: str) -> list[ModuleDescriptor]:
    """Read *path* into module descriptors.  Raises :class:`ConfigurationError`."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read module file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in module file {path}: {e}") from e

    descriptors = modules_from_dict(data, path)
    logger.info("[REGISTRY] Loaded %d modules from %s", len(descriptors), path)
    return descriptors
