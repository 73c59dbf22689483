"""
instruction_context: per-turn instruction context assembly for a
customer-service language model.

Public API for library usage::

    from instruction_context import process

    prompt = process("What time do you close?", "en")
    print(prompt.ordered_modules)
    print(prompt.text)
"""

from .engine import ContextEngine, get_default_engine, process
from .errors import ConfigurationError, RetrievalDegraded
from .models import ComposedPrompt, SessionContext, SessionUpdate
from .session import InMemorySessionStore, SessionStore

__all__ = [
    "ComposedPrompt",
    "ConfigurationError",
    "ContextEngine",
    "InMemorySessionStore",
    "RetrievalDegraded",
    "SessionContext",
    "SessionStore",
    "SessionUpdate",
    "get_default_engine",
    "process",
]
