"""
Performance watchdog for the request pipeline.

Each request gets its own :class:`RequestTimer`; the monitor itself only
holds the thresholds.  Slow requests are reported through the ``[PERF]``
warning log line, never through the returned prompt.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

# Seconds
DEFAULT_THRESHOLDS: dict[str, float] = {
    "retrieval": 3.5,
    "composition": 2.0,
    "total": 8.0,
}

_LABELS = {
    "retrieval": "Slow knowledge retrieval",
    "selection": "Slow module selection",
    "composition": "Slow prompt assembly",
    "total": "Slow total processing",
}

UTTERANCE_PREFIX = 50


class RequestTimer:
    """Stage timings for one request."""

    def __init__(self, thresholds: dict[str, float]) -> None:
        self._thresholds = thresholds
        self._t0 = time.perf_counter()
        self.timings: dict[str, float] = {}
        self._finished = False

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Time the enclosed block as *name*.  Exceptions propagate unchanged."""
        t0 = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = self.timings.get(name, 0.0) + (time.perf_counter() - t0)

    def elapsed(self) -> float:
        return time.perf_counter() - self._t0

    def finish(self, utterance: Optional[str], modules: list[str]) -> list[str]:
        """
        Close the timer and report slow stages.

        Returns
        -------
        list[str]
            Human-readable flags, one per exceeded threshold.  Empty when the
            request was fast.
        """
        if not self._finished:
            self.timings["total"] = self.elapsed()
            self._finished = True

        try:
            flags = [
                f"{_LABELS.get(stage, 'Slow ' + stage)} ({self.timings[stage] * 1000:.0f}ms)"
                for stage, limit in self._thresholds.items()
                if stage in self.timings and self.timings[stage] > limit
            ]
            if flags:
                prefix = (utterance or "")[:UTTERANCE_PREFIX]
                short_names = [m.split("/")[-1] for m in modules]
                logger.warning(
                    "[PERF] %s for query: %r Modules: %s Total time: %.0fms",
                    ", ".join(flags), prefix, short_names, self.timings["total"] * 1000,
                    extra={"perf": {
                        "flags": flags,
                        "utterance": prefix,
                        "modules": list(modules),
                        "timings": dict(self.timings),
                    }},
                )
            return flags
        except Exception as exc:
            logger.debug("[PERF] Reporting failed: %s", exc)
            return []


class PerformanceMonitor:
    """
    Parameters
    ----------
    thresholds:
        Stage name -> seconds.  Stages without a threshold are timed but
        never flagged.  Defaults to :data:`DEFAULT_THRESHOLDS`.
    """

    def __init__(self, thresholds: Optional[dict[str, float]] = None) -> None:
        self.thresholds = dict(DEFAULT_THRESHOLDS if thresholds is None else thresholds)

    def start(self) -> RequestTimer:
        return RequestTimer(self.thresholds)
