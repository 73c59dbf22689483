"""
Configuration: loads settings from .instruction_context.yaml, environment
variables, and built-in defaults (in that priority order: CLI args > env >
YAML > defaults).
"""

import os

import yaml

from .errors import ConfigurationError


_DEFAULTS = {
    "max_chars": 24000,
    "fragment_cap": 12,
    "vector_backend": "none",
    "vector_url": "http://localhost:8088",
    "vector_top_k": 5,
    "vector_min_score": 0.5,
    "vector_timeout": 3.0,
    "broader_recall": False,
    "carry_last_topic": True,
    "retrieval_threshold": 3.5,
    "composition_threshold": 2.0,
    "total_threshold": 8.0,
    "embedding_model": "text-embedding-3-small",
    "openai_api_key": "",
    "vector_db_path": ".instruction_context/vectors.db",
    "knowledge_file": "",
    "modules_file": "",
    "log_dir": ".instruction_context/logs",
    "log_level": "INFO",
}

_VECTOR_BACKENDS = ("none", "http", "openai")

# Config file search locations
_CONFIG_FILENAMES = [".instruction_context.yaml", ".instruction_context.yml"]


def _find_config_file(explicit_path: str | None = None) -> str | None:
    """Find the config file. Checks explicit path, CWD, then user home."""
    if explicit_path:
        if os.path.isfile(explicit_path):
            return explicit_path
        return None

    # Search CWD first, then home directory
    search_dirs = [os.getcwd(), os.path.expanduser("~")]
    for d in search_dirs:
        for name in _CONFIG_FILENAMES:
            path = os.path.join(d, name)
            if os.path.isfile(path):
                return path
    return None


def _load_yaml(path: str) -> dict:
    """Load YAML file, returns empty dict on failure."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}
    except (OSError, yaml.YAMLError):
        return {}


class Config:
    """Engine configuration.

    Settings are resolved in priority order:
    1. CLI arguments (handled by caller)
    2. Environment variables (``INSTRUCTION_CONTEXT_*``)
    3. .instruction_context.yaml config file
    4. Built-in defaults

    A value that cannot be converted, or an unknown ``vector_backend``,
    raises :class:`ConfigurationError` naming the setting.
    """

    def __init__(self, yaml_data: dict | None = None):
        yd = yaml_data or {}

        # Helper: env var > yaml > default
        def _get(key: str, cast=str):
            env_name = f"INSTRUCTION_CONTEXT_{key.upper()}"
            env_val = os.getenv(env_name)
            if env_val is not None:
                source, raw = env_name, env_val
            elif yd.get(key) is not None:
                source, raw = f"config file key '{key}'", yd[key]
            else:
                return _DEFAULTS[key]
            try:
                return cast(raw)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(
                    f"{source}: expected {cast.__name__}, got {raw!r}") from e

        def _get_bool(key: str) -> bool:
            env_val = os.getenv(f"INSTRUCTION_CONTEXT_{key.upper()}")
            if env_val is not None:
                return env_val.lower() == "true"
            yaml_val = yd.get(key)
            if yaml_val is not None:
                return bool(yaml_val)
            return _DEFAULTS[key]

        # Composition
        self.MAX_CHARS = _get("max_chars", cast=int)
        self.FRAGMENT_CAP = _get("fragment_cap", cast=int)
        self.CARRY_LAST_TOPIC = _get_bool("carry_last_topic")

        # Vector fallback
        backend = _get("vector_backend").strip().lower()
        if backend not in _VECTOR_BACKENDS:
            raise ConfigurationError(
                f"unknown vector_backend {backend!r}; expected one of {', '.join(_VECTOR_BACKENDS)}")
        self.VECTOR_BACKEND = backend
        self.VECTOR_URL = _get("vector_url")
        self.VECTOR_TOP_K = _get("vector_top_k", cast=int)
        self.VECTOR_MIN_SCORE = _get("vector_min_score", cast=float)
        self.VECTOR_TIMEOUT = _get("vector_timeout", cast=float)
        self.BROADER_RECALL = _get_bool("broader_recall")
        self.VECTOR_DB_PATH = _get("vector_db_path")

        # Performance thresholds (seconds)
        self.THRESHOLDS: dict[str, float] = {
            "retrieval": _get("retrieval_threshold", cast=float),
            "composition": _get("composition_threshold", cast=float),
            "total": _get("total_threshold", cast=float),
        }

        # OpenAI
        openai_section = yd.get("openai", {}) if isinstance(yd.get("openai"), dict) else {}
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY") or openai_section.get(
            "api_key", _DEFAULTS["openai_api_key"])
        self.EMBEDDING_MODEL = _get("embedding_model")

        # Content overrides
        self.KNOWLEDGE_FILE = _get("knowledge_file")
        self.MODULES_FILE = _get("modules_file")

        # Logging
        self.LOG_DIR = _get("log_dir")
        self.LOG_LEVEL = _get("log_level").upper()

    @classmethod
    def load(cls, config_path: str | None = None) -> "Config":
        """Load config from YAML file (if found) + env vars + defaults."""
        path = _find_config_file(config_path)
        yaml_data = _load_yaml(path) if path else {}
        return cls(yaml_data)
