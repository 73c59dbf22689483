"""
Session-store interface and a non-persistent reference implementation.

The engine never mutates session state.  It reads a frozen
:class:`SessionContext` snapshot and hands back a :class:`SessionUpdate`;
the store decides how (and whether) to apply it.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace

from .models import DEFAULT_LANGUAGE, SessionContext, SessionUpdate

logger = logging.getLogger(__name__)

MAX_TOPICS = 10
MAX_MESSAGES = 10


class SessionStore(ABC):

    @abstractmethod
    def get(self, session_id: str) -> SessionContext:
        """Return the current snapshot, or a fresh one for unknown ids."""

    @abstractmethod
    def propose(self, session_id: str, update: SessionUpdate) -> SessionContext:
        """Apply *update* and return the new snapshot."""


class InMemorySessionStore(SessionStore):
    """Dictionary-backed store.  Updates are serialized with a lock."""

    def __init__(self, seasonal_context: str | None = None):
        self._sessions: dict[str, SessionContext] = {}
        self._lock = threading.Lock()
        self.seasonal_context = seasonal_context

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> SessionContext:
        with self._lock:
            existing = self._sessions.get(session_id)
        if existing is not None:
            return existing
        return SessionContext(
            session_id=session_id,
            language=DEFAULT_LANGUAGE,
            seasonal_context=self.seasonal_context,
        )

    def propose(self, session_id: str, update: SessionUpdate) -> SessionContext:
        with self._lock:
            current = self._sessions.get(session_id) or SessionContext(
                session_id=session_id, seasonal_context=self.seasonal_context,
            )
            messages = current.recent_messages
            if update.utterance:
                messages = (messages + (("user", update.utterance),))[-MAX_MESSAGES:]
            updated = replace(
                current,
                language=update.language,
                last_topic=update.last_topic,
                topics=tuple(update.topics)[-MAX_TOPICS:],
                message_count=current.message_count + 1,
                recent_messages=messages,
            )
            self._sessions[session_id] = updated
        logger.debug(
            "[SESSION] %s: last_topic=%s language=%s messages=%d",
            session_id, updated.last_topic, updated.language, updated.message_count,
        )
        return updated

    def record_reply(self, session_id: str, text: str) -> None:
        """Append the assistant's reply so the next turn sees it in context."""
        with self._lock:
            current = self._sessions.get(session_id)
            if current is None:
                return
            messages = (current.recent_messages + (("assistant", text),))[-MAX_MESSAGES:]
            self._sessions[session_id] = replace(current, recent_messages=messages)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
