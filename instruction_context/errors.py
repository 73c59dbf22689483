"""
Error taxonomy for the instruction context engine.

Only :class:`ConfigurationError` is allowed to escape to the caller, and only
while the engine is being built.  Everything that can go wrong per request
degrades into a warning marker on the returned prompt.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Warning markers recorded on ComposedPrompt.warnings
# ---------------------------------------------------------------------------

DEGRADED_RETRIEVAL = "retrieval_degraded"
BUDGET_EXCEEDED = "budget_exceeded"
UNSUPPORTED_LANGUAGE = "unsupported_language"
PIPELINE_ERROR = "pipeline_error"


def warning(marker: str, detail: str) -> str:
    """Format a warning entry as ``"<marker>: <detail>"``."""
    return f"{marker}: {detail}"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(Exception):
    """Fatal misconfiguration detected at startup.

    Raised when the module catalog has no always-include modules, references
    an unknown category, lacks a body for a language it accepts, or when
    content files cannot be loaded.
    """


class RetrievalDegraded(RuntimeError):
    """A similarity backend failed or answered with something unusable.

    Raised by backends and caught by the vector fallback, which turns it into
    an empty result plus a ``retrieval_degraded`` warning.
    """
