"""Text cleanup applied before hashing and matching.

Chat UIs render the clock time, day labels and role badges inside the same
node as the message body, often twice (once visible, once for screen
readers). These helpers strip that noise so the same message always produces
the same canonical string.
"""

from __future__ import annotations

import re

from core.errors import PipelineError

# "10:31 AM10:31 AM" or "10:31 AM 10:32 PM" runs collapse to nothing.
_REPEATED_CLOCK = re.compile(r"\d{1,2}:\d{2}\s*(?:AM|PM)(?:\s*\d{1,2}:\d{2}\s*(?:AM|PM))+", re.IGNORECASE)
# "TodayToday", "March 3March 3".
_REPEATED_DAY = re.compile(
    r"(?:Today|Yesterday|[A-Z][a-z]+ \d{1,2})\s*(?:Today|Yesterday|[A-Z][a-z]+ \d{1,2})+"
)
_REPEATED_DATE = re.compile(r"(\d{4}/\d{1,2}/\d{1,2}|\d{1,2}/\d{1,2}/\d{4})\s*\1")
_REPEATED_DOMAIN = re.compile(r"\b([a-zA-Z0-9-]+\.(?:com|org|net))\s*\1")
# Badges render twice ("adminadmin"); a lone "admin" or "bot" is message text.
_ROLE_BADGE = re.compile(
    r"\b(?:administrator|admin|bot)(?:\s*(?:administrator|admin|bot)\b)+", re.IGNORECASE
)
_WHITESPACE = re.compile(r"\s+")


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def clean_message_text(text: str) -> str:
    """Return the canonical form of a raw message text.

    Raises PipelineError for anything that is not a string, so callers can
    skip the candidate without aborting the batch.
    """

    if not isinstance(text, str):
        raise PipelineError(f"Expected text, got {type(text).__name__}")

    cleaned = _REPEATED_CLOCK.sub("", text)
    cleaned = _REPEATED_DAY.sub("", cleaned)
    cleaned = _REPEATED_DATE.sub(r"\1", cleaned)
    cleaned = _REPEATED_DOMAIN.sub(r"\1", cleaned)
    cleaned = _ROLE_BADGE.sub("", cleaned)
    return _collapse_whitespace(cleaned)


def normalize_for_fingerprint(text: str) -> str:
    """Normalize text for deterministic fingerprinting."""

    return _collapse_whitespace(text).lower()
