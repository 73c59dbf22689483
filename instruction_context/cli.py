"""
`instruction-context` developer CLI.

Commands
--------
instruction-context compose "<utterance>"                 -- show the composed prompt
instruction-context compose "<utterance>" --language is --json
instruction-context compose "<utterance>" --session-topic hours
instruction-context topics  "<utterance>"                 -- show detected topics
instruction-context modules --language is                 -- list modules in composition order
instruction-context embed                                 -- embed fragments into the local store
instruction-context search  "<utterance>" --top-k 5       -- raw similarity search
instruction-context export  knowledge|modules [-o FILE]   -- dump bundled content as YAML
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Optional

import yaml

from .config import Config
from .engine import ContextEngine, load_index
from .errors import ConfigurationError
from .knowledge import content
from .knowledge.backends import NullSimilarityBackend, create_backend
from .knowledge.embedder import embed_fragments, get_openai_client
from .knowledge.loader import knowledge_to_dict
from .knowledge.vector_store import SQLiteVectorStore
from .language import detect_language
from .log_setup import setup_logger
from .models import SUPPORTED_LANGUAGES, SessionContext
from .modules import catalog
from .modules.loader import modules_to_dict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config(args: argparse.Namespace) -> Config:
    config = Config.load(getattr(args, "config", None))
    if getattr(args, "max_chars", None):
        config.MAX_CHARS = args.max_chars
    if getattr(args, "backend", None):
        config.VECTOR_BACKEND = args.backend
    return config


def _build_engine(config: Config) -> ContextEngine:
    try:
        return ContextEngine.from_config(config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)


def _index(config: Config):
    try:
        return load_index(config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)


def _language(args: argparse.Namespace, quiet: bool = False) -> str:
    if args.language:
        return args.language
    guess = detect_language(args.utterance)
    if not quiet:
        print(f"(detected language: {guess.language}, {guess.confidence} confidence)")
    return guess.language


# ---------------------------------------------------------------------------
# Sub-command handlers
# ---------------------------------------------------------------------------

def _cmd_compose(args: argparse.Namespace) -> None:
    """Run the full pipeline for one utterance."""
    config = _load_config(args)
    engine = _build_engine(config)
    language = _language(args, quiet=args.json)

    session = SessionContext(
        session_id="cli",
        language=language,
        last_topic=args.session_topic,
        seasonal_context=args.season,
        message_count=1 if args.session_topic else 0,
    )
    prompt = engine.process(args.utterance, language, session,
                            broader_recall=args.broader_recall or None)
    engine.close()

    if args.json:
        print(json.dumps({
            "language": language,
            "topics": prompt.topics,
            "ordered_modules": prompt.ordered_modules,
            "attached_fragments": [f.id for f in prompt.attached_fragments],
            "fragment_sources": {
                f.id: prompt.fragment_sources[f.content_hash].value
                for f in prompt.attached_fragments
                if f.content_hash in prompt.fragment_sources
            },
            "total_length": prompt.total_length,
            "warnings": prompt.warnings,
            "timings_ms": {k: round(v * 1000, 2) for k, v in prompt.timings.items()},
            "text": prompt.text,
        }, indent=2, ensure_ascii=False))
        return

    print(prompt.text)
    print("\n" + "-" * 60)
    print(f"  Topics    : {', '.join(prompt.topics) or '(none)'}")
    print(f"  Modules   : {', '.join(prompt.ordered_modules)}")
    print(f"  Fragments : {', '.join(f.id for f in prompt.attached_fragments) or '(none)'}")
    print(f"  Length    : {prompt.total_length} / {config.MAX_CHARS}")
    for w in prompt.warnings:
        print(f"  Warning   : {w}")
    print(f"  Time      : {prompt.timings.get('total', 0.0) * 1000:.1f}ms")


def _cmd_topics(args: argparse.Namespace) -> None:
    """Show keyword and vector topic activations."""
    config = _load_config(args)
    engine = _build_engine(config)
    language = _language(args)

    t0 = time.perf_counter()
    result = engine.detector.detect(args.utterance, language, broader_recall=args.broader_recall)
    elapsed_ms = (time.perf_counter() - t0) * 1000
    engine.close()

    rule_topics = engine.index.rule_topics(args.utterance, language)
    print(f"\nRule topics: {', '.join(sorted(rule_topics)) or '(none)'}")
    if not result.activations:
        print(f"No topics detected for: {args.utterance!r}")
    for act in result.activations:
        print(f"\n  {act.topic}  [{act.source.value}]")
        for f in act.matched_fragments:
            print(f"     - {f.id:<28} priority={f.priority_hint:<3} source={result.source_of(f).value}")
    for w in result.warnings:
        print(f"\n  Warning: {w}")
    print(f"\n  Detection time: {elapsed_ms:.1f}ms")


def _cmd_modules(args: argparse.Namespace) -> None:
    """List the module catalog in composition order."""
    config = _load_config(args)
    engine = _build_engine(config)
    engine.close()
    registry = engine.registry

    languages = [args.language] if args.language else list(SUPPORTED_LANGUAGES)
    for language in languages:
        gated = [d for d in registry.descriptors if d.language_gate.allows(language)]
        print(f"\nModules for {language!r}  [{len(gated)} module(s)]")
        print("-" * 70)
        for d in sorted(gated, key=registry.sort_key):
            flag = "always" if d.always_include else ", ".join(sorted(d.related_topics))
            print(
                f"  {d.priority.name.lower():<9} {d.category.name.lower():<11} "
                f"{d.id:<28} {flag}"
            )


def _cmd_embed(args: argparse.Namespace) -> None:
    """Embed every fragment into the local SQLite vector store."""
    config = _load_config(args)
    index = _index(config)

    try:
        client = get_openai_client(config.OPENAI_API_KEY)
    except (ImportError, EnvironmentError) as exc:
        print(f"Cannot embed: {exc}", file=sys.stderr)
        sys.exit(1)

    store = SQLiteVectorStore(config.VECTOR_DB_PATH)
    if args.clear:
        store.clear()

    print(f"Embedding {len(index)} fragments into {config.VECTOR_DB_PATH}")
    t0 = time.perf_counter()
    summary = embed_fragments(
        index.fragments, store, client=client, model=config.EMBEDDING_MODEL,
    )
    elapsed = time.perf_counter() - t0
    stored = store.count()
    store.close()

    print(
        f"\nEmbed complete:\n"
        f"  Fragments : {summary['total']}\n"
        f"  Embedded  : {summary['embedded']}\n"
        f"  Errors    : {summary['errors']}\n"
        f"  Stored    : {stored}\n"
        f"  Time      : {elapsed:.1f}s"
    )


def _cmd_search(args: argparse.Namespace) -> None:
    """Raw similarity search through the configured backend."""
    config = _load_config(args)
    index = _index(config)
    try:
        backend = create_backend(config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    if isinstance(backend, NullSimilarityBackend):
        print("Vector search is disabled (vector_backend: none).", file=sys.stderr)
        sys.exit(1)

    language = _language(args)
    t0 = time.perf_counter()
    try:
        hits = backend.similarity_search(args.utterance, language, args.top_k, config.VECTOR_MIN_SCORE)
    except Exception as exc:
        print(f"Search failed: {exc}", file=sys.stderr)
        sys.exit(1)
    elapsed_ms = (time.perf_counter() - t0) * 1000

    if not hits:
        print(f"No results found for: {args.utterance!r}")
        return

    print(f"\nSearch results for: {args.utterance!r}  [{len(hits)} result(s)]")
    print("-" * 70)
    for i, hit in enumerate(hits, 1):
        fragment = index.resolve(hit.fragment_ref)
        label = fragment.id if fragment else f"(unknown) {hit.fragment_ref[:16]}"
        print(f"\n  [{i}] {label}")
        print(f"       Score  : {hit.score:.4f}")
        if fragment:
            print(f"       Topic  : {fragment.primary_topic}")
            print(f"       Text   : {fragment.body_text[:120]}")
    print(f"\n  Search time: {elapsed_ms:.1f}ms")


def _cmd_export(args: argparse.Namespace) -> None:
    """Dump the bundled knowledge or module catalog as YAML."""
    if args.what == "knowledge":
        data = knowledge_to_dict(
            content.build_default_index(), content.TRIGGER_RULES, content.ENRICHMENT_RULES,
        )
    else:
        data = modules_to_dict(catalog.MODULES)

    text = yaml.safe_dump(data, allow_unicode=True, sort_keys=False, width=100)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(text)
        print(f"Wrote {args.what} to {args.output}")
    else:
        print(text)


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="instruction-context",
        description="Instruction context engine: inspect topic detection and prompt composition",
    )
    parser.add_argument("--config", help="Path to .instruction_context.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log to stderr as well")
    subparsers = parser.add_subparsers(dest="cmd", metavar="COMMAND")
    subparsers.required = True

    def _lang(p: argparse.ArgumentParser) -> None:
        p.add_argument("--language", "-l", choices=SUPPORTED_LANGUAGES,
                       help="Request language (detected when omitted)")

    # --- compose ---
    compose_p = subparsers.add_parser("compose", help="Compose the prompt for an utterance")
    compose_p.add_argument("utterance")
    _lang(compose_p)
    compose_p.add_argument("--session-topic", dest="session_topic",
                           help="Pretend the session's last topic was this")
    compose_p.add_argument("--season", help="Seasonal context for the session")
    compose_p.add_argument("--max-chars", dest="max_chars", type=int,
                           help="Override the size budget")
    compose_p.add_argument("--backend", choices=("none", "http", "openai"),
                           help="Override the vector backend")
    compose_p.add_argument("--broader-recall", dest="broader_recall", action="store_true",
                           help="Run vector search even when keywords matched")
    compose_p.add_argument("--json", action="store_true", help="Machine-readable JSON output")
    compose_p.set_defaults(func=_cmd_compose)

    # --- topics ---
    topics_p = subparsers.add_parser("topics", help="Show topic activations")
    topics_p.add_argument("utterance")
    _lang(topics_p)
    topics_p.add_argument("--backend", choices=("none", "http", "openai"),
                          help="Override the vector backend")
    topics_p.add_argument("--broader-recall", dest="broader_recall", action="store_true")
    topics_p.set_defaults(func=_cmd_topics)

    # --- modules ---
    modules_p = subparsers.add_parser("modules", help="List modules in composition order")
    _lang(modules_p)
    modules_p.set_defaults(func=_cmd_modules)

    # --- embed ---
    embed_p = subparsers.add_parser("embed", help="Embed all fragments (OpenAI)")
    embed_p.add_argument("--clear", action="store_true", help="Empty the store first")
    embed_p.set_defaults(func=_cmd_embed)

    # --- search ---
    search_p = subparsers.add_parser("search", help="Raw similarity search")
    search_p.add_argument("utterance")
    _lang(search_p)
    search_p.add_argument("--top-k", dest="top_k", type=int, default=5)
    search_p.add_argument("--backend", choices=("http", "openai"),
                          help="Override the vector backend")
    search_p.set_defaults(func=_cmd_search)

    # --- export ---
    export_p = subparsers.add_parser("export", help="Dump bundled content as YAML")
    export_p.add_argument("what", choices=("knowledge", "modules"))
    export_p.add_argument("--output", "-o", help="Write to FILE instead of stdout")
    export_p.set_defaults(func=_cmd_export)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the ``instruction-context`` console script."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = Config.load(args.config)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    setup_logger(config.LOG_DIR, config.LOG_LEVEL, console=args.verbose)

    args.func(args)


if __name__ == "__main__":
    main()
