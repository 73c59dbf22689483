"""
Language detection for incoming utterances (English / Icelandic).

Pattern based, no model calls.  Order of checks:

1. Icelandic-only letters (þ, æ, ð) or a short Icelandic acknowledgment
2. English service vocabulary
3. Any English marker (greeting, question opener, function words)
4. Icelandic accented vowels, words, greetings or question openers
5. The session's previous language, for short follow-ups
6. English
"""

import re
from dataclasses import dataclass
from typing import Optional

from .models import DEFAULT_LANGUAGE


# ── English patterns ──

_EN_SERVICE_WORDS = re.compile(
    r"\b(temperature|time|price|cost|open|close|hours|towel|food|drink|ritual|pass|"
    r"package|admission|facilities|parking|booking|reservation|location|directions|"
    r"transport|shuttle|bus|water|pool|shower|changing|room|ticket|gift|card)\b",
    re.IGNORECASE,
)

_EN_MARKERS = {
    "greetings": re.compile(r"^(hi|hey|hello|good\s*(morning|afternoon|evening))", re.IGNORECASE),
    "questions": re.compile(
        r"^(please|can|could|would|tell|what|when|where|why|how|is|are|do|does)\b",
        re.IGNORECASE,
    ),
    "gratitude": re.compile(r"(thanks|thank you)", re.IGNORECASE),
    "common": re.compile(r"\b(the|and|but|or|if|so|my|your|our|their|its)\b", re.IGNORECASE),
}

_FOLLOW_UP = re.compile(r"^(and|or|but|so|also|what about)\b", re.IGNORECASE)


# ── Icelandic patterns ──

_IS_LETTERS = re.compile(r"[þæð]", re.IGNORECASE)
_IS_ACCENTS = re.compile(r"[öáíúéóý]", re.IGNORECASE)

_IS_MARKERS = {
    "words": re.compile(
        r"\b(og|að|er|það|við|ekki|ég|þú|hann|hún|vera|hafa|vilja|þetta|góðan|daginn|"
        r"kvöld|morgun|takk|fyrir)\b",
        re.IGNORECASE,
    ),
    "greetings": re.compile(r"^(góðan|halló|hæ|sæl|sæll|bless)", re.IGNORECASE),
    "questions": re.compile(
        r"^(er|má|get|getur|hvað|hvenær|hvar|af hverju|hvernig|eru|geturðu)\b",
        re.IGNORECASE,
    ),
}

_IS_ACKNOWLEDGMENTS = re.compile(
    r"^(takk|já|nei|oki|okei|flott|gott|bara|allt|snilld|snillingur|jam|jamm|geggjað|"
    r"geggjuð|magnað|hjálpsamt|snilldin|skil|æði|æðislegt|æðisleg)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class LanguageGuess:
    language: str
    confidence: str   # "high" | "medium" | "low"
    reason: str


def detect_language(message: Optional[str], previous_language: Optional[str] = None) -> LanguageGuess:
    """
    Guess whether *message* is English or Icelandic.

    Parameters
    ----------
    message:
        The user's utterance.
    previous_language:
        Language of the session so far, used when the message itself gives
        no signal (e.g. "Saman?").

    Returns
    -------
    LanguageGuess
    """
    text = (message or "").strip().lower()

    if _IS_LETTERS.search(text) or _IS_ACKNOWLEDGMENTS.search(text):
        return LanguageGuess("is", "high", "icelandic_pattern_match")

    if _EN_SERVICE_WORDS.search(text):
        return LanguageGuess("en", "high", "english_term_match")

    if any(p.search(text) for p in _EN_MARKERS.values()):
        return LanguageGuess("en", "high", "english_pattern_match")

    if _IS_ACCENTS.search(text) or any(p.search(text) for p in _IS_MARKERS.values()):
        return LanguageGuess("is", "high", "icelandic_pattern_match")

    if previous_language:
        confidence = "high" if _FOLLOW_UP.search(text) else "medium"
        return LanguageGuess(previous_language, confidence, "context_based")

    return LanguageGuess(DEFAULT_LANGUAGE, "low", "default_to_english")
