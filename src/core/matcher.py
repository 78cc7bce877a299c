"""Keyword matching logic (core domain)."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from core.models import MatchResult


def normalize_keywords(keywords: Iterable[str]) -> List[str]:
    """Drop blank and case-insensitively repeated keywords, keeping order."""

    seen: set[str] = set()
    normalized: List[str] = []
    for keyword in keywords:
        if not isinstance(keyword, str):
            continue
        cleaned = " ".join(keyword.split())
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        normalized.append(cleaned)
    return normalized


def is_combined(keyword: str) -> bool:
    return " " in keyword.strip()


def find_keyword(text: str, keywords: Iterable[str]) -> Optional[str]:
    """Return the first keyword that matches ``text``.

    Matching logic:
    - Combined keywords ("server down") are checked first; every token must
      appear as a case-insensitive substring, in any order.
    - Otherwise the first single-token keyword found as a substring wins.
    """

    lowered = text.lower()
    candidates = normalize_keywords(keywords)

    for keyword in candidates:
        if not is_combined(keyword):
            continue
        tokens = [token.lower() for token in keyword.split() if token]
        if tokens and all(token in lowered for token in tokens):
            return keyword

    for keyword in candidates:
        if is_combined(keyword):
            continue
        if keyword.lower() in lowered:
            return keyword

    return None


def match(
    normalized_text: str,
    keywords: Iterable[str],
    *,
    timestamp: float = 0.0,
    sender_hint: Optional[str] = None,
    observed_at: Optional[datetime] = None,
) -> Optional[MatchResult]:
    """Evaluate one normalized text against the keyword list."""

    keyword = find_keyword(normalized_text, keywords)
    if keyword is None:
        return None
    return MatchResult(
        normalized_text=normalized_text,
        matched_keyword=keyword,
        timestamp=timestamp,
        sender_hint=sender_hint,
        observed_at=observed_at,
    )
